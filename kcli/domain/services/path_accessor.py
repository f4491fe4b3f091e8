"""Resolve field paths against decoded JSON payloads."""
from __future__ import annotations

import json
from typing import Any

from kcli.core.exceptions import DecodeError
from kcli.domain.models.filter import FieldPath


class _Missing:
    """Marker for "path does not resolve"; JSON ``null`` is a real value."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def decode_payload(payload: bytes | str | None) -> Any:
    """Decode a message value into a JSON tree.

    Raises
    ------
    DecodeError
        If the payload is absent, not UTF-8, or not JSON.
    """
    if payload is None:
        raise DecodeError("message has no payload")
    try:
        text = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
        return json.loads(text)
    except (UnicodeDecodeError, ValueError) as exc:
        raise DecodeError(f"payload is not a JSON document: {exc}") from exc


def resolve_path(document: Any, path: FieldPath) -> Any:
    """Return the value at *path* in *document*, or `MISSING`.

    Keys index into mappings; an index indexes into a list. Anything that
    does not fit (scalar in the way, unknown key, index out of range) is
    `MISSING`, never an exception.
    """
    current = document
    for seg in path.segments:
        if not isinstance(current, dict) or seg.key not in current:
            return MISSING
        current = current[seg.key]
        if seg.index is not None:
            if not isinstance(current, list) or seg.index >= len(current):
                return MISSING
            current = current[seg.index]
    return current
