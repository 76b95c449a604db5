"""
Tests for JSON and datetime helpers.
"""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from inbox_lifecycle.utils.datetime_utils import (
    dt_replace_utc,
    parse_iso_datetime,
    to_utc_iso,
)
from inbox_lifecycle.utils.json_utils import (
    parse_json_object,
    parse_json_string_list,
    parse_json_value,
)


@pytest.mark.parametrize(
    "value,expected",
    [
        ('{"a": 1}', {"a": 1}),
        (b'{"a": 1}', {"a": 1}),
        ({"a": 1}, {"a": 1}),
        ("{broken", {}),
        ("[1, 2]", {}),
        ("", {}),
        (None, {}),
    ],
)
def test_parse_json_object(value, expected):
    assert parse_json_object(value) == expected


def test_parse_json_value_passthrough_and_blank():
    assert parse_json_value([1]) == [1]
    assert parse_json_value("   ") is None
    assert parse_json_value("3") == 3


def test_parse_json_string_list_drops_non_strings():
    assert parse_json_string_list('["A", 1, null, "B"]') == ["A", "B"]
    assert parse_json_string_list('{"A": 1}') == []
    assert parse_json_string_list(("X",)) == ["X"]


@pytest.mark.parametrize(
    "value",
    [
        "2026-01-05T09:00:00Z",
        "2026-01-05T09:00:00+00:00",
        "2026-01-05T09:00:00+0000",
        "2026-01-05T10:00:00+01:00",
        "2026-01-05T09:00:00",
        datetime(2026, 1, 5, 9, 0),
        datetime(2026, 1, 5, 4, 0, tzinfo=timezone(timedelta(hours=-5))),
    ],
)
def test_parse_iso_datetime_normalizes_to_utc(value):
    parsed = parse_iso_datetime(value)
    assert parsed == datetime(2026, 1, 5, 9, 0, tzinfo=UTC)
    assert parsed.utcoffset() == timedelta(0)


@pytest.mark.parametrize("value", [None, "", "soon", 12345])
def test_parse_iso_datetime_rejects_garbage(value):
    assert parse_iso_datetime(value) is None


def test_to_utc_iso_millisecond_z_format():
    value = datetime(2026, 1, 5, 10, 0, 0, 123456, tzinfo=timezone(timedelta(hours=1)))
    assert to_utc_iso(value) == "2026-01-05T09:00:00.123Z"


def test_naive_helpers():
    naive = datetime(2026, 1, 5, 9, 0)
    assert dt_replace_utc(naive).tzinfo is UTC
    assert dt_replace_utc(None) is None
