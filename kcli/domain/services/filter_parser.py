"""Parse tail filter expressions.

Grammar (single pass, left to right)::

    expression := path "=" literal
    path       := segment ("." segment)*
    segment    := identifier | identifier "[" integer "]"
    literal    := quoted-string | bare-token

Literals are kept as text; whether ``19`` means a number or a string is
decided at evaluation time against the JSON value it is compared with.
"""
from __future__ import annotations

import re
from typing import List

from kcli.core.exceptions import FilterSyntaxError
from kcli.domain.models.filter import FieldPath, FilterExpression, FilterOperator, PathSegment

_SEGMENT_RE = re.compile(r"^(?P<key>[^.\[\]=\s'\"]+)(?:\[(?P<index>0|[1-9]\d*)\])?$")
_QUOTES = ("'", '"')


def parse_filter(text: str) -> FilterExpression:
    """Return the `FilterExpression` for *text* or raise `FilterSyntaxError`."""
    op = FilterOperator.EQ.value
    idx = text.find(op)
    if idx < 0:
        raise FilterSyntaxError("missing '=' operator", token=text.strip(), position=_lstrip_pos(text, 0))

    path = parse_path(text[:idx], offset=0)
    literal = _parse_literal(text[idx + len(op):], offset=idx + len(op))
    return FilterExpression(path=path, operator=FilterOperator.EQ, literal=literal)


def parse_path(raw: str, offset: int = 0) -> FieldPath:
    """Parse a dotted/indexed field path such as ``data.items[2].name``."""
    stripped = raw.strip()
    start = offset + _lstrip_pos(raw, 0)
    if not stripped:
        raise FilterSyntaxError("empty field path", token="", position=start)

    segments: List[PathSegment] = []
    pos = start
    for piece in stripped.split("."):
        if not piece:
            raise FilterSyntaxError("empty path segment", token=stripped, position=pos)
        m = _SEGMENT_RE.match(piece)
        if m is None:
            raise FilterSyntaxError("malformed path segment", token=piece, position=pos)
        index = m.group("index")
        segments.append(PathSegment(key=m.group("key"), index=int(index) if index is not None else None))
        pos += len(piece) + 1
    return FieldPath(segments=tuple(segments))


def _parse_literal(raw: str, offset: int) -> str:
    lit = raw.strip()
    pos = offset + _lstrip_pos(raw, 0)
    if not lit:
        raise FilterSyntaxError("empty literal", token="", position=pos)

    if lit[0] in _QUOTES:
        value = _unquote(lit, pos)
    else:
        bad = next((i for i, ch in enumerate(lit) if ch.isspace() or ch in _QUOTES or ch == "="), None)
        if bad is not None:
            raise FilterSyntaxError(
                "unexpected character in literal", token=lit[bad:].strip() or lit[bad], position=pos + bad
            )
        value = lit

    if value == "":
        raise FilterSyntaxError("empty literal", token=lit, position=pos)
    return value


def _unquote(lit: str, pos: int) -> str:
    quote = lit[0]
    out: List[str] = []
    i = 1
    while i < len(lit):
        ch = lit[i]
        if ch == "\\" and i + 1 < len(lit):
            out.append(lit[i + 1])
            i += 2
            continue
        if ch == quote:
            if i != len(lit) - 1:
                raise FilterSyntaxError(
                    "unexpected text after quoted literal", token=lit[i + 1:], position=pos + i + 1
                )
            return "".join(out)
        out.append(ch)
        i += 1
    raise FilterSyntaxError("unterminated quoted literal", token=lit, position=pos)


def _lstrip_pos(s: str, base: int) -> int:
    return base + (len(s) - len(s.lstrip()))
