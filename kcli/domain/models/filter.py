"""Structured form of a tail filter such as ``data.items[0].name=19``."""
from __future__ import annotations

from enum import Enum
from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field


class FilterOperator(str, Enum):
    """Comparison operators understood by the evaluator."""

    EQ = "="


class PathSegment(BaseModel):
    """One step of a field path: a map key, optionally followed by a list index."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., min_length=1)
    index: int | None = Field(default=None, ge=0)

    def __str__(self) -> str:
        if self.index is None:
            return self.key
        return f"{self.key}[{self.index}]"


class FieldPath(BaseModel):
    """Ordered, non-empty sequence of segments."""

    model_config = ConfigDict(frozen=True)

    segments: Tuple[PathSegment, ...] = Field(..., min_length=1)

    def __str__(self) -> str:
        return ".".join(str(s) for s in self.segments)


class FilterExpression(BaseModel):
    """Immutable predicate built once per tail invocation."""

    model_config = ConfigDict(frozen=True)

    path: FieldPath
    operator: FilterOperator = FilterOperator.EQ
    literal: str

    def __str__(self) -> str:
        return f"{self.path}{self.operator.value}{self.literal}"
