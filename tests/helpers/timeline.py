"""
Builders for message timelines and signal bundles used across tests.
"""

import json
from datetime import UTC, datetime, timedelta

from inbox_lifecycle.db.models import Message
from inbox_lifecycle.schemas.messages import TimelineMessage
from inbox_lifecycle.schemas.signals import SignalBundle

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=UTC)  # A Monday


def at(hours: float = 0, days: float = 0) -> datetime:
    return T0 + timedelta(hours=hours, days=days)


def outbound(message_id: str, when: datetime, **overrides) -> TimelineMessage:
    data = {
        "id": message_id,
        "user_id": "u1",
        "conversation_id": "c1",
        "page_id": "p1",
        "created_at": when,
        "direction": "outbound",
        "sender_type": "business",
        "body": "Just checking in",
    }
    data.update(overrides)
    return TimelineMessage(**data)


def inbound(message_id: str, when: datetime, **overrides) -> TimelineMessage:
    data = {
        "id": message_id,
        "user_id": "u1",
        "conversation_id": "c1",
        "page_id": "p1",
        "created_at": when,
        "direction": "inbound",
        "sender_type": "customer",
        "body": "Hi",
    }
    data.update(overrides)
    return TimelineMessage(**data)


def message_row(message_id: str, when: datetime, direction: str, **overrides) -> Message:
    """ORM row for persistence tests; features/rule_hits given as Python values."""
    features = overrides.pop("features", None)
    rule_hits = overrides.pop("rule_hits", None)
    data = {
        "id": message_id,
        "user_id": "u1",
        "conversation_id": "c1",
        "page_id": "p1",
        "created_time": when,
        "direction": direction,
        "sender_type": "business" if direction == "outbound" else "customer",
        "body": "text",
        "features_json": json.dumps(features) if features is not None else None,
        "rule_hits_json": json.dumps(rule_hits) if rule_hits is not None else None,
    }
    data.update(overrides)
    return Message(**data)


def bundle(now: datetime = T0, **overrides) -> SignalBundle:
    """Engaged two-way conversation with the last message inbound one hour ago."""
    data = {
        "now": now,
        "message_count": 2,
        "inbound_count": 1,
        "outbound_count": 1,
        "inbound_count_non_final": 1,
        "last_inbound_at": now - timedelta(hours=1),
        "last_outbound_at": now - timedelta(hours=2),
        "last_message_at": now - timedelta(hours=1),
        "last_non_final_message_at": now - timedelta(hours=1),
        "last_non_final_direction": "inbound",
        "days_since_last_inbound": 1 / 24,
        "days_since_last_activity": 1 / 24,
    }
    data.update(overrides)
    return SignalBundle(**data)
