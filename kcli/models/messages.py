from pydantic import BaseModel


class MessageRecord(BaseModel):
    topic: str
    partition: int
    offset: int
    timestamp: int | None = None
    key: bytes | None = None
    value: bytes | None = None
