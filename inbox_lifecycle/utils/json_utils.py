"""
Defensive JSON parsing for schemaless blobs stored next to messages.

Invalid input never raises; callers receive an empty structure instead.
"""

import json
from typing import Any


def parse_json_value(value: Any) -> Any:
    """Decode a JSON string; pass through already-decoded values; None on failure."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if not isinstance(value, str):
        return value
    if not value.strip():
        return None
    try:
        return json.loads(value)
    except (ValueError, TypeError):
        return None


def parse_json_object(value: Any) -> dict[str, Any]:
    """Return the decoded object, or {} when the blob is missing, invalid or not an object."""
    parsed = parse_json_value(value)
    return parsed if isinstance(parsed, dict) else {}


def parse_json_string_list(value: Any) -> list[str]:
    """Return the string items of a decoded array; non-strings are dropped."""
    parsed = parse_json_value(value)
    if not isinstance(parsed, (list, tuple, set, frozenset)):
        return []
    return [item for item in parsed if isinstance(item, str)]
