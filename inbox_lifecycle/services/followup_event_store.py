"""
Follow-up event persistence - sticky read-modify-write upserts over SQLAlchemy.

The merge rule itself lives in followup_events.merge_followup_event; this module
only loads, merges and writes. Writers must be single-writer-per-conversation:
the merge is only correct if no concurrent write for the same follow-up
message id interleaves with it.
"""

import logging
from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inbox_lifecycle.core.config import settings
from inbox_lifecycle.db.helpers import chunked
from inbox_lifecycle.db.models import FollowupEventRow, Message
from inbox_lifecycle.schemas.messages import FollowupEvent, TimelineMessage
from inbox_lifecycle.services.followup_events import derive_followup_events, merge_followup_event
from inbox_lifecycle.services.message_classification import is_loss_inbound_message
from inbox_lifecycle.services.metrics.counters import (
    record_followup_events_upserted,
    record_followup_loss_flags_repaired,
)
from inbox_lifecycle.utils.datetime_utils import dt_replace_utc

logger = logging.getLogger(__name__)

REPAIR_LIMIT_DEFAULT = 2000
REPAIR_LIMIT_MAX = 10000

_EVENT_FIELDS = (
    "user_id",
    "conversation_id",
    "page_id",
    "asset_id",
    "followup_sent_at",
    "previous_activity_at",
    "idle_seconds",
    "revived",
    "immediate_loss",
    "next_inbound_message_id",
    "next_inbound_at",
    "next_inbound_is_loss",
)


def row_to_event(row: FollowupEventRow) -> FollowupEvent:
    return FollowupEvent(
        followup_message_id=row.followup_message_id,
        user_id=row.user_id,
        conversation_id=row.conversation_id,
        page_id=row.page_id,
        asset_id=row.asset_id,
        followup_sent_at=dt_replace_utc(row.followup_sent_at),
        previous_activity_at=dt_replace_utc(row.previous_activity_at),
        idle_seconds=row.idle_seconds,
        revived=row.revived or 0,
        immediate_loss=row.immediate_loss or 0,
        next_inbound_message_id=row.next_inbound_message_id,
        next_inbound_at=dt_replace_utc(row.next_inbound_at),
        next_inbound_is_loss=row.next_inbound_is_loss,
    )


def message_to_timeline(row: Message) -> TimelineMessage:
    """Build the typed timeline message; JSON blobs are parsed defensively here."""
    return TimelineMessage(
        id=row.id,
        user_id=row.user_id,
        conversation_id=row.conversation_id,
        page_id=row.page_id,
        asset_id=row.asset_id,
        created_at=row.created_time,
        direction=row.direction,
        sender_type=row.sender_type,
        body=row.body,
        message_type=row.message_type,
        message_trigger=row.message_trigger,
        features=row.features_json,
        rule_hits=row.rule_hits_json,
    )


class FollowupEventStore:
    """Repository for follow-up events (load existing, save with sticky merge)."""

    def __init__(self, db: Session, batch_size: int | None = None):
        self.db = db
        self.batch_size = batch_size or settings.followup_batch_size

    def load_existing_event(self, followup_message_id: str) -> FollowupEvent | None:
        row = self.db.get(FollowupEventRow, followup_message_id)
        return row_to_event(row) if row else None

    def load_existing_events(
        self, conversation_id: str, user_id: str | None = None
    ) -> dict[str, FollowupEvent]:
        """Persisted events of one conversation keyed by follow-up message id."""
        stmt = select(FollowupEventRow).where(FollowupEventRow.conversation_id == conversation_id)
        if user_id is not None:
            stmt = stmt.where(FollowupEventRow.user_id == user_id)
        rows = self.db.execute(stmt).scalars().all()
        return {row.followup_message_id: row_to_event(row) for row in rows}

    def save_events(self, events: Sequence[FollowupEvent]) -> int:
        """
        Upsert events with sticky merge semantics, committing every batch_size rows.

        Idempotent: re-running a failed batch never downgrades sticky fields.

        Returns:
            Number of events written

        Raises:
            SQLAlchemyError: after rolling back the failing batch
        """
        written = 0
        for batch in chunked(list(events), self.batch_size):
            ids = [event.followup_message_id for event in batch]
            try:
                stmt = (
                    select(FollowupEventRow)
                    .where(FollowupEventRow.followup_message_id.in_(ids))
                    .with_for_update()
                )
                rows = {row.followup_message_id: row for row in self.db.execute(stmt).scalars()}
                for event in batch:
                    row = rows.get(event.followup_message_id)
                    existing = row_to_event(row) if row is not None else None
                    merged = merge_followup_event(existing, event)
                    if row is None:
                        row = FollowupEventRow(followup_message_id=merged.followup_message_id)
                        self.db.add(row)
                        rows[merged.followup_message_id] = row
                    for name in _EVENT_FIELDS:
                        setattr(row, name, getattr(merged, name))
                self.db.commit()
            except SQLAlchemyError:
                self.db.rollback()
                logger.error(
                    f"Failed to save follow-up event batch ({len(batch)} rows)", exc_info=True
                )
                raise
            written += len(batch)
        record_followup_events_upserted(written)
        return written


def load_conversation_messages(
    db: Session, conversation_id: str, user_id: str | None = None
) -> list[TimelineMessage]:
    stmt = select(Message).where(Message.conversation_id == conversation_id)
    if user_id is not None:
        stmt = stmt.where(Message.user_id == user_id)
    stmt = stmt.order_by(Message.created_time.asc())
    return [message_to_timeline(row) for row in db.execute(stmt).scalars().all()]


def recompute_followup_events_for_conversation(
    db: Session, conversation_id: str, user_id: str | None = None
) -> dict:
    """
    Re-derive and persist follow-up events for one conversation.

    Args:
        db: Database session
        conversation_id: Conversation to recompute
        user_id: Optional owner filter

    Returns:
        dict with upserted count
    """
    messages = load_conversation_messages(db, conversation_id, user_id=user_id)
    if not messages:
        return {"upserted": 0}

    store = FollowupEventStore(db)
    existing = store.load_existing_events(conversation_id, user_id=user_id)
    events = derive_followup_events(messages, existing)
    if not events:
        return {"upserted": 0}

    upserted = store.save_events(events)
    logger.info(f"Conversation {conversation_id}: upserted {upserted} follow-up events")
    return {"upserted": upserted}


def backfill_followup_events_for_user(db: Session, user_id: str) -> dict:
    """
    Recompute follow-up events for every conversation of a user, oldest first.

    Returns:
        dict with scanned_conversations and upserted_events
    """
    stmt = (
        select(Message.conversation_id)
        .where(Message.user_id == user_id)
        .group_by(Message.conversation_id)
        .order_by(func.min(Message.created_time).asc(), Message.conversation_id.asc())
    )
    conversation_ids = list(db.execute(stmt).scalars().all())

    upserted_events = 0
    for conversation_id in conversation_ids:
        result = recompute_followup_events_for_conversation(db, conversation_id, user_id=user_id)
        upserted_events += result["upserted"]

    logger.info(
        f"Backfill for user {user_id}: scanned {len(conversation_ids)} conversations, "
        f"upserted {upserted_events} events"
    )
    return {"scanned_conversations": len(conversation_ids), "upserted_events": upserted_events}


def repair_followup_event_loss_flags(
    db: Session,
    user_id: str | None = None,
    limit: int = REPAIR_LIMIT_DEFAULT,
    batch_size: int | None = None,
) -> dict:
    """
    Re-classify the attributed reply of recent events and fix loss flags.

    next_inbound_is_loss is overwritten with the current classification;
    immediate_loss is only ever promoted, and only for revived events.

    Args:
        db: Database session
        user_id: Optional owner filter
        limit: Max events to scan, clamped to [1, 10000]

    Returns:
        dict with scanned and updated counts
    """
    limit = max(1, min(REPAIR_LIMIT_MAX, limit))
    batch_size = batch_size or settings.followup_batch_size

    stmt = select(FollowupEventRow).where(FollowupEventRow.next_inbound_message_id.isnot(None))
    if user_id is not None:
        stmt = stmt.where(FollowupEventRow.user_id == user_id)
    stmt = stmt.order_by(FollowupEventRow.followup_sent_at.desc()).limit(limit)
    rows = db.execute(stmt).scalars().all()

    updated = 0
    pending = 0
    try:
        for row in rows:
            inbound_stmt = select(Message).where(Message.id == row.next_inbound_message_id)
            if row.user_id is not None:
                inbound_stmt = inbound_stmt.where(Message.user_id == row.user_id)
            inbound = db.execute(inbound_stmt).scalar_one_or_none()
            if inbound is None:
                continue
            is_loss = 1 if is_loss_inbound_message(message_to_timeline(inbound)) else 0
            row.next_inbound_is_loss = is_loss
            if row.revived == 1 and is_loss == 1:
                row.immediate_loss = 1
            updated += 1
            pending += 1
            if pending >= batch_size:
                db.commit()
                pending = 0
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.error("Failed to repair follow-up loss flags", exc_info=True)
        raise

    record_followup_loss_flags_repaired(updated)
    logger.info(f"Loss flag repair: scanned {len(rows)}, updated {updated}")
    return {"scanned": len(rows), "updated": updated}
