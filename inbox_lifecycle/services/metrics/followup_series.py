"""
Follow-up series metrics - time-bucketed counts of follow-ups, revivals and immediate losses.
"""

import logging
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from inbox_lifecycle.db.models import FollowupEventRow
from inbox_lifecycle.schemas.messages import FollowupEvent
from inbox_lifecycle.utils.datetime_utils import dt_replace_utc, parse_iso_datetime, to_utc_iso

logger = logging.getLogger(__name__)

RANGES = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}
DEFAULT_RANGE = "30d"
BUCKETS = ("hour", "day", "week", "month")
_AUTO_BUCKET = {"24h": "hour", "7d": "day", "90d": "week"}


def parse_range(range_key: str | None) -> str:
    normalized = (range_key or "").lower()
    return normalized if normalized in RANGES else DEFAULT_RANGE


def parse_bucket(bucket: str | None, range_key: str) -> str:
    """Explicit bucket if valid, otherwise the natural bucket for the range."""
    normalized = (bucket or "").lower()
    if normalized in BUCKETS:
        return normalized
    return _AUTO_BUCKET.get(range_key, "day")


def floor_bucket(value: datetime, bucket: str) -> datetime:
    value = dt_replace_utc(value).astimezone(UTC)
    if bucket == "hour":
        return value.replace(minute=0, second=0, microsecond=0)
    day = value.replace(hour=0, minute=0, second=0, microsecond=0)
    if bucket == "day":
        return day
    if bucket == "week":
        # Weeks start on Monday
        return day - timedelta(days=day.weekday())
    return day.replace(day=1)


def add_bucket(value: datetime, bucket: str) -> datetime:
    if bucket == "hour":
        return value + timedelta(hours=1)
    if bucket == "day":
        return value + timedelta(days=1)
    if bucket == "week":
        return value + timedelta(days=7)
    if value.month == 12:
        return value.replace(year=value.year + 1, month=1)
    return value.replace(month=value.month + 1)


def _event_fields(event) -> tuple[datetime | None, int, int]:
    if isinstance(event, dict):
        sent_at = event.get("followup_sent_at")
        revived = event.get("revived")
        immediate_loss = event.get("immediate_loss")
    else:
        sent_at = event.followup_sent_at
        revived = event.revived
        immediate_loss = event.immediate_loss
    return parse_iso_datetime(sent_at), int(revived or 0), int(immediate_loss or 0)


def get_followup_series(
    events: Iterable[FollowupEvent | FollowupEventRow | dict],
    range_key: str | None = None,
    bucket: str | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Aggregate follow-up events into a zero-filled time series.

    Args:
        events: FollowupEvent models, ORM rows or plain dicts
        range_key: 24h | 7d | 30d | 90d (anything else falls back to 30d)
        bucket: hour | day | week | month (anything else picks one from the range)
        now: Reference time (defaults to current UTC time)

    Returns:
        Dict with range, bucket and series rows
        ({bucket_start, events, revived, immediate_loss}), oldest first
    """
    range_key = parse_range(range_key)
    bucket = parse_bucket(bucket, range_key)
    now = dt_replace_utc(now) or datetime.now(UTC)

    end = floor_bucket(now, bucket)
    start = floor_bucket(end - RANGES[range_key] + timedelta(minutes=1), bucket)

    by_bucket: dict[datetime, dict[str, int]] = {}
    for event in events:
        sent_at, revived, immediate_loss = _event_fields(event)
        if sent_at is None or sent_at < start or sent_at > now:
            continue
        counts = by_bucket.setdefault(
            floor_bucket(sent_at, bucket), {"events": 0, "revived": 0, "immediate_loss": 0}
        )
        counts["events"] += 1
        counts["revived"] += 1 if revived > 0 else 0
        counts["immediate_loss"] += 1 if immediate_loss > 0 else 0

    series = []
    cursor = start
    while cursor <= end:
        counts = by_bucket.get(cursor, {})
        series.append(
            {
                "bucket_start": to_utc_iso(cursor),
                "events": counts.get("events", 0),
                "revived": counts.get("revived", 0),
                "immediate_loss": counts.get("immediate_loss", 0),
            }
        )
        cursor = floor_bucket(add_bucket(cursor, bucket), bucket)

    return {"range": range_key, "bucket": bucket, "series": series}


def get_followup_series_for_user(
    db: Session,
    user_id: str | None = None,
    range_key: str | None = None,
    bucket: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Load persisted events (optionally for one user) and aggregate them."""
    stmt = select(FollowupEventRow)
    if user_id:
        stmt = stmt.where(FollowupEventRow.user_id == user_id)
    rows = db.execute(stmt).scalars().all()
    logger.debug(f"Aggregating {len(rows)} follow-up events for series")
    return get_followup_series(rows, range_key=range_key, bucket=bucket, now=now)
