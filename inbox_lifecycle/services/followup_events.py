"""
Follow-up event deriver - reconstructs follow-up episodes from a message timeline.

Pure functions (no DB, no IO). Persistence lives in followup_event_store.

An episode is an eligible outbound business message sent after an idle period
(no prior activity, or >= 24h since the last activity). Each episode is matched
with the first attributable inbound reply and tagged revived / immediate_loss.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import timedelta

from inbox_lifecycle.core.config import settings
from inbox_lifecycle.schemas.messages import FollowupEvent, TimelineMessage
from inbox_lifecycle.services.message_classification import (
    is_attributable_inbound,
    is_conversation_activity_message,
    is_eligible_followup_outbound,
    is_loss_inbound_message,
)

logger = logging.getLogger(__name__)


def merge_followup_event(existing: FollowupEvent | None, derived: FollowupEvent) -> FollowupEvent:
    """
    Reconcile a freshly derived event with the persisted one.

    revived / immediate_loss never go back from 1 to 0, next_inbound_* keep the
    first value written, next_inbound_is_loss is kept once known. Everything else
    takes the derived value. Safe to apply repeatedly.

    Args:
        existing: Previously persisted event (or None)
        derived: Event computed from the current message window

    Returns:
        Merged event
    """
    if existing is None:
        return derived.model_copy()
    return derived.model_copy(
        update={
            "revived": 1 if existing.revived == 1 else derived.revived,
            "immediate_loss": 1 if existing.immediate_loss == 1 else derived.immediate_loss,
            "next_inbound_message_id": (
                existing.next_inbound_message_id
                if existing.next_inbound_message_id is not None
                else derived.next_inbound_message_id
            ),
            "next_inbound_at": (
                existing.next_inbound_at
                if existing.next_inbound_at is not None
                else derived.next_inbound_at
            ),
            "next_inbound_is_loss": (
                existing.next_inbound_is_loss
                if existing.next_inbound_is_loss is not None
                else derived.next_inbound_is_loss
            ),
        }
    )


def _within_revival_window(event: FollowupEvent, window: timedelta) -> bool:
    if event.next_inbound_at is None:
        return False
    return event.next_inbound_at - event.followup_sent_at < window


def derive_followup_events(
    messages: Iterable[TimelineMessage],
    existing_by_followup_id: Mapping[str, FollowupEvent] | None = None,
    idle_seconds_threshold: int | None = None,
    revival_window_seconds: int | None = None,
) -> list[FollowupEvent]:
    """
    Derive follow-up episodes for one conversation.

    Existing events seed the sticky fields so a partial or older message window
    never erases previously observed outcomes.

    Args:
        messages: All messages of the conversation, any order
        existing_by_followup_id: Persisted events keyed by follow-up message id
        idle_seconds_threshold: Idle gap that makes an outbound a follow-up (default 24h)
        revival_window_seconds: Reply window counted as revived (default 24h)

    Returns:
        Episodes in send order
    """
    existing_by_followup_id = existing_by_followup_id or {}
    idle_threshold = (
        idle_seconds_threshold
        if idle_seconds_threshold is not None
        else settings.followup_idle_seconds
    )
    revival_window = timedelta(
        seconds=(
            revival_window_seconds
            if revival_window_seconds is not None
            else settings.followup_revival_window_seconds
        )
    )

    # Messages with an unparseable timestamp cannot be placed on the timeline
    timeline = sorted(
        (m for m in messages if m.created_at is not None),
        key=lambda m: m.created_at,
    )

    events: list[FollowupEvent] = []
    last_activity_at = None

    for message in timeline:
        if is_eligible_followup_outbound(message):
            idle_seconds = None
            if last_activity_at is not None:
                idle_seconds = max(0, int((message.created_at - last_activity_at).total_seconds()))
            if idle_seconds is None or idle_seconds >= idle_threshold:
                derived = FollowupEvent(
                    followup_message_id=message.id,
                    user_id=message.user_id,
                    conversation_id=message.conversation_id,
                    page_id=message.page_id,
                    asset_id=message.asset_id,
                    followup_sent_at=message.created_at,
                    previous_activity_at=last_activity_at,
                    idle_seconds=idle_seconds,
                )
                events.append(merge_followup_event(existing_by_followup_id.get(message.id), derived))

        if is_conversation_activity_message(message):
            last_activity_at = message.created_at

    for message in timeline:
        if not is_attributable_inbound(message):
            continue
        # Latest episode sent at or before this reply; ties go to the later one
        candidate = None
        for event in events:
            if event.followup_sent_at > message.created_at:
                continue
            if candidate is None or event.followup_sent_at >= candidate.followup_sent_at:
                candidate = event
        if candidate is None or candidate.next_inbound_message_id is not None:
            continue

        candidate.next_inbound_message_id = message.id
        candidate.next_inbound_at = message.created_at
        candidate.next_inbound_is_loss = 1 if is_loss_inbound_message(message) else 0

    for event in events:
        if _within_revival_window(event, revival_window):
            event.revived = 1
            if event.next_inbound_is_loss == 1:
                event.immediate_loss = 1

    logger.debug(
        f"Derived {len(events)} follow-up events from {len(timeline)} messages"
    )
    return events
