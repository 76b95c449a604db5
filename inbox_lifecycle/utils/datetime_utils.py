"""
Helpers for optional datetime handling (ISO-8601 strings in, aware UTC datetimes out).
"""
from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Any

# "+0000" style offsets that fromisoformat rejects on some inputs
_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def dt_replace_utc(dt: datetime | None | Any) -> datetime | None:
    """
    Return dt with tzinfo=UTC if naive, or None if dt is None.
    Use for optional datetimes that may be naive (e.g. from DB).
    """
    if dt is None:
        return None
    if isinstance(dt, datetime):
        return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt
    return None


def parse_iso_datetime(value: str | datetime | None) -> datetime | None:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime, or None when unparseable.

    Accepts a trailing "Z" and compact "+0000" offsets.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return dt_replace_utc(value).astimezone(UTC)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(_COMPACT_OFFSET.sub(r"\1:\2", text))
        except ValueError:
            return None
    return dt_replace_utc(parsed).astimezone(UTC)


def to_utc_iso(dt: datetime) -> str:
    """Render an aware datetime as UTC ISO-8601 with millisecond precision and a Z suffix."""
    as_utc = dt_replace_utc(dt).astimezone(UTC)
    return as_utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")
