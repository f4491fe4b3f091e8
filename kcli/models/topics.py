"""Topic and broker metadata returned by `topics` / `brokers` commands."""
from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field, computed_field


class TopicSummary(BaseModel):
    name: str
    partitions: int = Field(..., ge=0)
    replication_factor: int = Field(..., ge=0)


class PartitionInfo(BaseModel):
    id: int
    leader: int | None = None
    replicas: list[int] = Field(default_factory=list)
    isr: list[int] = Field(default_factory=list)
    start_offset: int | None = None
    end_offset: int | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def messages(self) -> int | None:
        if self.start_offset is None or self.end_offset is None:
            return None
        return max(0, self.end_offset - self.start_offset)


class TopicDetail(BaseModel):
    name: str
    replication_factor: int
    partitions: List[PartitionInfo]
    consumer_groups: List[str] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_messages(self) -> int:
        """Messages currently retained, summed over partitions with known offsets."""
        return sum(p.messages or 0 for p in self.partitions)


class BrokerInfo(BaseModel):
    node_id: int
    host: str
    port: int
    rack: str | None = None
