"""
Tests for classifier budget counters.
"""

from datetime import datetime, timedelta, timezone

from inbox_lifecycle.db.models import AiUsageConversationDaily
from inbox_lifecycle.services.ai_attempt import run_ai_attempt
from inbox_lifecycle.services.ai_usage_service import AiUsageService, usage_day

DAY = "2026-01-05"


def test_usage_day_is_utc():
    local_evening = datetime(2026, 1, 5, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    assert usage_day(local_evening) == "2026-01-06"


def test_counts_start_at_zero(db):
    assert AiUsageService(db).get_counts("c1", DAY) == (0, 0)


def test_increment_bumps_both_counters(db):
    service = AiUsageService(db)

    service.increment("c1", DAY)
    service.increment("c1", DAY)
    service.increment("c2", DAY)

    assert service.get_counts("c1", DAY) == (3, 2)
    assert service.get_counts("c2", DAY) == (3, 1)
    assert db.query(AiUsageConversationDaily).count() == 2


def test_counters_are_per_day(db):
    service = AiUsageService(db)

    service.increment("c1", DAY)
    service.increment("c1", "2026-01-06")

    assert service.get_counts("c1", DAY) == (1, 1)
    assert service.get_counts("c1", "2026-01-06") == (1, 1)
    assert service.get_counts("c1", "2026-01-07") == (0, 0)


def test_incrementer_is_a_zero_argument_callable(db):
    service = AiUsageService(db)
    bump = service.incrementer("c1", DAY)

    bump()
    bump()

    assert service.get_counts("c1", DAY) == (2, 2)


def test_failed_runtime_attempt_is_persisted_against_budget(db):
    service = AiUsageService(db)

    def runtime(model, prompt_messages, options):
        raise TimeoutError("classifier timed out")

    daily, conversation = service.get_counts("c1", DAY)
    first = run_ai_attempt(
        "call me next week",
        "",
        {},
        daily,
        conversation,
        service.incrementer("c1", DAY),
        runtime=runtime,
        mode="runtime",
    )
    assert first.attempt_outcome == "timeout"
    assert service.get_counts("c1", DAY) == (1, 1)

    daily, conversation = service.get_counts("c1", DAY)
    second = run_ai_attempt(
        "call me next week",
        "",
        {},
        daily,
        conversation,
        service.incrementer("c1", DAY),
        runtime=runtime,
        mode="runtime",
    )
    assert second.attempted is False
    assert second.skipped_reason == "conversation_budget_exceeded"
    assert service.get_counts("c1", DAY) == (1, 1)
