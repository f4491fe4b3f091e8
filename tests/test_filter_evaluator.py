import json

import pytest

from kcli.domain.services.filter_evaluator import build_predicate, evaluate, matches, to_text
from kcli.domain.services.filter_parser import parse_filter
from kcli.models.messages import MessageRecord


def record(value, offset=0) -> MessageRecord:
    if not isinstance(value, (bytes, type(None))):
        value = json.dumps(value).encode()
    return MessageRecord(topic="orders", partition=0, offset=offset, value=value)


@pytest.mark.parametrize("value", [19, "19", 19.0, " 19 "])
def test_number_literal_matches_numbers_and_numeric_strings(value):
    expr = parse_filter("data.attributes.name=19")
    assert evaluate(expr, record({"data": {"attributes": {"name": value}}}))


@pytest.mark.parametrize("value", ["abc", 20, "019x", None, True])
def test_number_literal_rejects_other_values(value):
    expr = parse_filter("data.attributes.name=19")
    assert not evaluate(expr, record({"data": {"attributes": {"name": value}}}))


def test_text_literal_does_not_match_number():
    expr = parse_filter("data.attributes.name=abc")
    assert not evaluate(expr, record({"data": {"attributes": {"name": 19}}}))
    assert evaluate(expr, record({"data": {"attributes": {"name": "abc"}}}))


def test_missing_path_is_false():
    expr = parse_filter("data.attributes.name=19")
    assert not evaluate(expr, record({"data": {"other": 19}}))


@pytest.mark.parametrize("payload", [b"not json", b"\xff", None])
def test_undecodable_payload_is_false(payload):
    assert not evaluate(parse_filter("a=1"), record(payload))


@pytest.mark.parametrize(
    "literal, value, expected",
    [
        ("true", True, True),
        ("false", False, True),
        ("1", True, False),
        ("null", None, True),
        ("1.5", 1.5, True),
        ("1e3", 1000, True),
        ("-2", -2, True),
    ],
)
def test_scalar_text_forms(literal, value, expected):
    assert matches(parse_filter(f"v={literal}"), {"v": value}) is expected


def test_container_values_compare_as_compact_json():
    expr = parse_filter("v='[1,2]'")
    assert matches(expr, {"v": [1, 2]})
    assert to_text({"a": 1}) == '{"a":1}'


def test_indexed_filter():
    expr = parse_filter("items[1].sku=X2")
    assert matches(expr, {"items": [{"sku": "X1"}, {"sku": "X2"}]})
    assert not matches(expr, {"items": [{"sku": "X2"}]})


def test_no_expression_matches_everything():
    predicate = build_predicate(None)
    assert predicate(record(b"not json at all"))
    assert predicate(record(None))


def test_predicate_is_repeatable():
    predicate = build_predicate(parse_filter("a=1"))
    msg = record({"a": 1})
    assert [predicate(msg) for _ in range(3)] == [True, True, True]
