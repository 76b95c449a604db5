"""
Pure predicates over stored messages (no DB, no IO).

Centralizes what counts as administrative, acknowledgement-only, or loss-bearing
so the follow-up deriver and the loss-flag repair job agree.
"""

from inbox_lifecycle.constants.rule_hits import (
    ADMINISTRATIVE_MESSAGE_TYPES,
    ADMINISTRATIVE_TRIGGER_MARKERS,
    DIRECTION_INBOUND,
    DIRECTION_OUTBOUND,
    LOSS_RULE_HITS,
    RULE_SYSTEM_ASSIGNMENT,
    SENDER_BUSINESS,
    SENDER_SYSTEM,
)
from inbox_lifecycle.schemas.messages import TimelineMessage


def _normalized(value: str | None) -> str:
    return (value or "").strip().lower()


def is_system_administrative_message(message: TimelineMessage) -> bool:
    """True for system senders, assignment notices and admin-triggered messages."""
    if _normalized(message.sender_type) == SENDER_SYSTEM:
        return True
    if _normalized(message.message_type) in ADMINISTRATIVE_MESSAGE_TYPES:
        return True
    trigger = _normalized(message.message_trigger)
    if any(marker in trigger for marker in ADMINISTRATIVE_TRIGGER_MARKERS):
        return True
    return RULE_SYSTEM_ASSIGNMENT in message.rule_hits


def is_ack_only_inbound_message(message: TimelineMessage) -> bool:
    """True if an inbound message carries no new intent ("thanks!", "ok")."""
    if message.direction != DIRECTION_INBOUND:
        return False
    return message.features.ack_only is True


def is_loss_inbound_message(message: TimelineMessage) -> bool:
    """True if an inbound message signals rejection, loss or indefinite deferral."""
    if message.direction != DIRECTION_INBOUND:
        return False
    if message.rule_hits & LOSS_RULE_HITS:
        return True
    features = message.features
    return (
        features.has_explicit_rejection_phrase is True
        or features.has_price_rejection_phrase is True
        or features.contains_loss_phrase is True
        or features.has_indefinite_deferral_phrase is True
        or features.explicit_lost is not None
    )


def is_conversation_activity_message(message: TimelineMessage) -> bool:
    """Messages that reset the idle clock (not administrative, not ack-only)."""
    return not is_system_administrative_message(message) and not is_ack_only_inbound_message(
        message
    )


def is_eligible_followup_outbound(message: TimelineMessage) -> bool:
    """Outbound business message that may start a follow-up episode."""
    if message.direction != DIRECTION_OUTBOUND:
        return False
    if message.sender_type != SENDER_BUSINESS:
        return False
    return not is_system_administrative_message(message)


def is_attributable_inbound(message: TimelineMessage) -> bool:
    """Inbound message that may count as the response to a follow-up."""
    return message.direction == DIRECTION_INBOUND and is_conversation_activity_message(message)
