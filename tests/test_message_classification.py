"""
Tests for message predicates shared by the follow-up deriver and the repair job.
"""

import pytest

from inbox_lifecycle.schemas.messages import MessageFeatures, TimelineMessage
from inbox_lifecycle.services.message_classification import (
    is_ack_only_inbound_message,
    is_attributable_inbound,
    is_conversation_activity_message,
    is_eligible_followup_outbound,
    is_loss_inbound_message,
    is_system_administrative_message,
)
from tests.helpers.timeline import at, inbound, outbound


@pytest.mark.parametrize(
    "overrides",
    [
        {"sender_type": "System"},
        {"message_type": "assignment_notice"},
        {"message_trigger": "ADMIN_REASSIGN"},
        {"message_trigger": "system_assignment"},
        {"rule_hits": '["SYSTEM_ASSIGNMENT"]'},
    ],
)
def test_administrative_messages(overrides):
    message = outbound("m1", at(0), **overrides)
    assert is_system_administrative_message(message) is True
    assert is_eligible_followup_outbound(message) is False
    assert is_conversation_activity_message(message) is False


def test_regular_business_outbound_is_eligible():
    message = outbound("m1", at(0), message_trigger="manual")
    assert is_system_administrative_message(message) is False
    assert is_eligible_followup_outbound(message) is True


def test_customer_sent_outbound_is_not_eligible():
    assert is_eligible_followup_outbound(outbound("m1", at(0), sender_type="customer")) is False


def test_ack_only_requires_real_boolean():
    assert is_ack_only_inbound_message(inbound("m1", at(0), features={"ack_only": True})) is True
    assert is_ack_only_inbound_message(inbound("m1", at(0), features={"ack_only": "true"})) is False
    assert is_ack_only_inbound_message(outbound("m1", at(0), features={"ack_only": True})) is False


def test_ack_only_inbound_is_not_activity():
    message = inbound("m1", at(0), features='{"ack_only": true}')
    assert is_conversation_activity_message(message) is False
    assert is_attributable_inbound(message) is False
    assert is_attributable_inbound(inbound("m2", at(0))) is True


@pytest.mark.parametrize(
    "overrides",
    [
        {"rule_hits": ["LOSS_PHRASE"]},
        {"rule_hits": '["EXPLICIT_REJECTION"]'},
        {"rule_hits": ["PRICE_REJECTION"]},
        {"rule_hits": ["INDEFINITE_DEFERRAL"]},
        {"features": {"has_explicit_rejection_phrase": True}},
        {"features": {"has_price_rejection_phrase": True}},
        {"features": {"contains_loss_phrase": True}},
        {"features": {"has_indefinite_deferral_phrase": True}},
        {"features": {"explicit_lost": {"reason": "went elsewhere"}}},
    ],
)
def test_loss_inbound_signals(overrides):
    assert is_loss_inbound_message(inbound("m1", at(0), **overrides)) is True


def test_loss_flags_do_not_apply_to_outbound_or_plain_replies():
    assert is_loss_inbound_message(outbound("m1", at(0), rule_hits=["LOSS_PHRASE"])) is False
    assert is_loss_inbound_message(inbound("m1", at(0), features={"contains_loss_phrase": False})) is False
    assert is_loss_inbound_message(inbound("m1", at(0), rule_hits="not json")) is False


def test_features_blob_parsing_is_defensive():
    features = MessageFeatures.from_blob('{"has_email": true, "deferral_date_hint": 5, "extra": 1}')
    assert features.has_email is True
    assert features.deferral_date_hint is None
    assert MessageFeatures.from_blob("[1, 2]") == MessageFeatures()
    assert MessageFeatures.from_blob(None) == MessageFeatures()


def test_timeline_message_parses_timestamps():
    message = TimelineMessage(id="m1", conversation_id="c1", created_at="2026-01-05T09:00:00+0000")
    assert message.created_at == at(0)
    assert TimelineMessage(id="m2", conversation_id="c1", created_at="yesterday").created_at is None
