"""Named broker connection profiles kept in the environment store."""
from __future__ import annotations

from pydantic import BaseModel, Field


class Environment(BaseModel):
    """One broker connection profile.

    Only `brokers` is required. The security fields are handed to the Kafka
    client unchanged when set.
    """

    name: str = Field(..., min_length=1, pattern=r"^[\w\-.]+$")
    brokers: str = Field(..., min_length=1, description="Comma-separated bootstrap servers")
    is_active: bool = False

    security_protocol: str = "PLAINTEXT"  # e.g. "SASL_SSL", "SSL"
    sasl_mechanism: str | None = None
    sasl_plain_username: str | None = None
    sasl_plain_password: str | None = None
    ssl_cafile: str | None = None

    @property
    def bootstrap_servers(self) -> list[str]:
        return [s.strip() for s in self.brokers.split(",") if s.strip()]
