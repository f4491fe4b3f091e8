"""Match messages against a `FilterExpression`.

Equality is deliberately permissive: when both sides look like JSON numbers
they are compared numerically, otherwise as text. ``name=19`` therefore
matches the number ``19``, the string ``"19"`` and ``19.0``.
"""
from __future__ import annotations

import json
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

from kcli.core.exceptions import DecodeError
from kcli.domain.models.filter import FilterExpression, FilterOperator
from kcli.domain.services.path_accessor import MISSING, decode_payload, resolve_path
from kcli.models.messages import MessageRecord

logger = logging.getLogger(__name__)

Predicate = Callable[[MessageRecord], bool]

_NUMBER_RE = re.compile(r"^-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?$")


def match_all(_: MessageRecord) -> bool:
    return True


def build_predicate(expression: Optional[FilterExpression]) -> Predicate:
    """Return a pure predicate; no expression means every message matches."""
    if expression is None:
        return match_all

    def _predicate(message: MessageRecord) -> bool:
        return evaluate(expression, message)

    return _predicate


def evaluate(expression: FilterExpression, message: MessageRecord) -> bool:
    try:
        document = decode_payload(message.value)
    except DecodeError as exc:
        logger.debug("skip %s/%s@%s: %s", message.topic, message.partition, message.offset, exc)
        return False
    return matches(expression, document)


def matches(expression: FilterExpression, document: Any) -> bool:
    """Evaluate against an already decoded document."""
    value = resolve_path(document, expression.path)
    if value is MISSING:
        return False
    if expression.operator is FilterOperator.EQ:
        return values_equal(value, expression.literal)
    raise ValueError(f"unsupported operator {expression.operator!r}")


def values_equal(value: Any, literal: str) -> bool:
    left = to_number(value)
    right = to_number(literal)
    if left is not None and right is not None:
        return left == right
    return to_text(value) == literal


def to_number(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        text = repr(value)
    elif isinstance(value, str):
        text = value.strip()
    else:
        return None
    if not _NUMBER_RE.match(text):
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def to_text(value: Any) -> str:
    """Text form of a JSON value as a user would type it on the command line."""
    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return json.dumps(value)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
