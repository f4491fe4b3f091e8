"""Consumer-group DTOs and the lag report."""
from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field, computed_field


class ConsumerGroupSummary(BaseModel):
    group_id: str
    protocol_type: str | None = None


class GroupMember(BaseModel):
    member_id: str
    client_id: str
    client_host: str
    assignment: dict[str, list[int]] = Field(default_factory=dict)


class ConsumerGroupDetail(BaseModel):
    group_id: str
    state: str  # Stable / Rebalancing / Empty / Dead …
    protocol_type: str | None = None
    protocol: str | None = None
    members: List[GroupMember] = Field(default_factory=list)


class LagEntry(BaseModel):
    """Lag of one partition; `lag is None` means unknown, never zero."""

    topic: str
    partition: int
    end_offset: int | None = None
    committed_offset: int | None = None
    lag: int | None = None

    @property
    def known(self) -> bool:
        return self.lag is not None


class LagReport(BaseModel):
    group_id: str
    entries: List[LagEntry] = Field(default_factory=list)
    total_lag: int = Field(0, ge=0)
    is_lower_bound: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_display(self) -> str:
        return f"≥{self.total_lag}" if self.is_lower_bound else str(self.total_lag)
