import pytest

from kcli.core.exceptions import DecodeError
from kcli.domain.services.filter_parser import parse_path
from kcli.domain.services.path_accessor import MISSING, decode_payload, resolve_path

DOC = {
    "data": {
        "attributes": {"name": 19, "tags": ["a", "b"], "nothing": None},
        "items": [{"sku": "X1"}, {"sku": "X2", "qty": 0}],
    },
    "flag": False,
}


@pytest.mark.parametrize(
    "path, expected",
    [
        ("data.attributes.name", 19),
        ("data.attributes.tags[1]", "b"),
        ("data.items[1].sku", "X2"),
        ("data.items[1].qty", 0),
        ("flag", False),
        ("data.attributes", DOC["data"]["attributes"]),
    ],
)
def test_resolves_existing_paths(path, expected):
    assert resolve_path(DOC, parse_path(path)) == expected


def test_json_null_is_a_value_not_missing():
    assert resolve_path(DOC, parse_path("data.attributes.nothing")) is None


@pytest.mark.parametrize(
    "path",
    [
        "data.unknown",
        "data.attributes.name.deeper",  # scalar in the way
        "data.items[5].sku",  # index out of range
        "data.attributes[0]",  # index into a mapping
        "flag.x",
        "data.items.sku",  # key lookup on a list
    ],
)
def test_unresolvable_paths_are_missing(path):
    assert resolve_path(DOC, parse_path(path)) is MISSING


def test_top_level_array_document_is_missing_for_keys():
    assert resolve_path([1, 2], parse_path("a")) is MISSING


def test_missing_is_falsy_singleton():
    assert not MISSING
    assert repr(MISSING) == "MISSING"
    assert type(MISSING)() is MISSING


def test_decode_payload_accepts_bytes_and_text():
    assert decode_payload(b'{"a": [1, 2]}') == {"a": [1, 2]}
    assert decode_payload('"plain"') == "plain"


@pytest.mark.parametrize("payload", [None, b"not json", b"\xff\xfe{}", b""])
def test_decode_payload_rejects_non_json(payload):
    with pytest.raises(DecodeError):
        decode_payload(payload)
