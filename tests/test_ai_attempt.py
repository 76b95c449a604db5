"""
Tests for classifier attempt orchestration (gate -> cache -> budget -> call).
"""

import json

import pytest

from inbox_lifecycle.core.config import settings
from inbox_lifecycle.services.ai_attempt import classify_attempt_outcome, run_ai_attempt
from inbox_lifecycle.services.ai_gate import AiInvalidOutputError
from inbox_lifecycle.services.metrics.counters import get_metrics

ELIGIBLE_TEXT = "Can you call me next week?"

VALID_OUTPUT = {
    "handoff": {"is_handoff": True, "type": "phone", "confidence": "HIGH", "evidence": "call me"},
    "deferred": {
        "is_deferred": True,
        "bucket": "NEXT_WEEK",
        "due_date_iso": None,
        "confidence": "MEDIUM",
        "evidence": "next week",
    },
}


class UsageCounter:
    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1


@pytest.fixture
def budgets(monkeypatch):
    monkeypatch.setattr(settings, "classifier_ai_daily_budget_calls", 5)
    monkeypatch.setattr(settings, "classifier_ai_max_calls_per_conversation_per_day", 2)


def _attempt(usage, **kwargs):
    params = {
        "message_text": ELIGIBLE_TEXT,
        "context_digest": "inbound:hi",
        "extracted_features": {},
        "daily_calls": 0,
        "conversation_calls": 0,
        "increment_usage": usage,
    }
    params.update(kwargs)
    return run_ai_attempt(**params)


def _failing(error):
    def runtime(model, prompt_messages, options):
        raise error

    return runtime


@pytest.mark.parametrize(
    "error,outcome",
    [
        (RuntimeError("boom"), "error"),
        (TimeoutError(), "timeout"),
        (RuntimeError("The operation was aborted"), "timeout"),
        (AiInvalidOutputError("ai_invalid_output"), "invalid_json"),
        (ValueError("Invalid response body"), "invalid_json"),
    ],
)
def test_classify_attempt_outcome(error, outcome):
    assert classify_attempt_outcome(error) == outcome


@pytest.mark.parametrize(
    "error,outcome",
    [
        (RuntimeError("upstream 500"), "error"),
        (TimeoutError("read timed out"), "timeout"),
        (AiInvalidOutputError("ai_invalid_output"), "invalid_json"),
    ],
)
def test_failed_runtime_attempts_count_against_budget(budgets, error, outcome):
    usage = UsageCounter()

    result = _attempt(usage, runtime=_failing(error), mode="runtime")

    assert usage.calls == 1
    assert result.attempted is True
    assert result.attempt_outcome == outcome
    assert result.errors
    assert result.interpretation is None
    assert result.daily_calls == 1
    assert result.conversation_calls == 1
    assert get_metrics()["counts"][f"ai_attempt.{outcome}"] == 1


def test_runtime_success(budgets):
    usage = UsageCounter()
    seen = []

    def runtime(model, prompt_messages, options):
        seen.append(model)
        return {"response": json.dumps(VALID_OUTPUT)}

    result = _attempt(usage, runtime=runtime, mode="runtime", daily_calls=2)

    assert usage.calls == 1
    assert seen == [settings.classifier_ai_model]
    assert result.attempt_outcome == "ok"
    assert result.interpretation.deferred.bucket == "NEXT_WEEK"
    assert result.daily_calls == 3
    assert result.skipped_reason is None
    counts = get_metrics()["counts"]
    assert counts["ai_gate.eligible"] == 1
    assert counts["ai_attempt.ok"] == 1


def test_runtime_receives_generation_options_from_settings(budgets, monkeypatch):
    monkeypatch.setattr(settings, "classifier_ai_max_output_tokens", 64)
    monkeypatch.setattr(settings, "classifier_ai_timeout_ms", 2000)
    seen = []

    def runtime(model, prompt_messages, options):
        seen.append(options)
        return {"response": json.dumps(VALID_OUTPUT)}

    result = _attempt(UsageCounter(), runtime=runtime, mode="runtime")

    assert result.attempt_outcome == "ok"
    assert seen == [{"max_tokens": 64, "temperature": 0, "timeout_ms": 2000}]


def test_runtime_mode_without_runtime_is_an_error_attempt(budgets):
    usage = UsageCounter()

    result = _attempt(usage, mode="runtime")

    assert usage.calls == 1
    assert result.attempt_outcome == "error"
    assert result.errors == ["ai_runtime_missing"]


def test_cache_hit_is_not_an_attempt(budgets):
    usage = UsageCounter()
    first = _attempt(usage, mode="mock")
    assert usage.calls == 1

    cached = _attempt(
        usage,
        mode="runtime",
        runtime=_failing(AssertionError("runtime must not be called")),
        existing_ai={
            "input_hash": first.input_hash,
            "interpretation": first.interpretation.model_dump(),
        },
    )

    assert usage.calls == 1
    assert cached.cache_hit is True
    assert cached.attempted is False
    assert cached.skipped_reason == "cache_hit"
    assert cached.interpretation == first.interpretation
    assert get_metrics()["counts"]["ai_gate.cache_hit"] == 1


def test_stale_cache_entry_is_ignored(budgets):
    usage = UsageCounter()

    result = _attempt(
        usage,
        mode="mock",
        existing_ai={"input_hash": "0" * 64, "interpretation": VALID_OUTPUT},
    )

    assert result.cache_hit is False
    assert result.attempted is True
    assert usage.calls == 1


@pytest.mark.parametrize(
    "daily,conversation,reason",
    [(5, 0, "daily_budget_exceeded"), (0, 2, "conversation_budget_exceeded")],
)
def test_exhausted_budget_skips_without_counting(budgets, daily, conversation, reason):
    usage = UsageCounter()

    result = _attempt(
        usage,
        mode="runtime",
        runtime=_failing(AssertionError("runtime must not be called")),
        daily_calls=daily,
        conversation_calls=conversation,
    )

    assert usage.calls == 0
    assert result.attempted is False
    assert result.skipped_reason == reason
    assert get_metrics()["counts"][f"ai_gate.{reason}"] == 1


def test_mock_mode_counts_only_after_success(budgets):
    usage = UsageCounter()

    result = _attempt(usage, mode="mock")

    assert usage.calls == 1
    assert result.attempt_outcome == "ok"
    assert result.interpretation.handoff.is_handoff is True


def test_gate_skip_records_reason(budgets):
    usage = UsageCounter()

    result = _attempt(usage, message_text="hello", mode="mock")

    assert usage.calls == 0
    assert result.skipped_reason == "keyword_gate"
    assert result.input_hash
    assert get_metrics()["counts"]["ai_gate.keyword_gate"] == 1


def test_mode_defaults_to_settings(budgets, monkeypatch):
    monkeypatch.setattr(settings, "classifier_ai_mode", "off")

    result = _attempt(UsageCounter())

    assert result.skipped_reason == "ai_disabled"


def test_max_input_chars_is_clamped(budgets, monkeypatch):
    monkeypatch.setattr(settings, "classifier_ai_max_input_chars", 10)
    assert settings.classifier_ai_max_input_chars == 200

    result = _attempt(UsageCounter(), message_text="call me " + "x" * 500, mode="mock")

    assert result.input_chars == 200
    assert result.input_truncated is True


def test_truncated_inputs_share_a_cache_key(budgets, monkeypatch):
    monkeypatch.setattr(settings, "classifier_ai_max_input_chars", 200)
    prefix = "call me next week " + "y" * 200

    first = _attempt(UsageCounter(), message_text=prefix + " tail one", mode="mock")
    second = _attempt(UsageCounter(), message_text=prefix + " another tail", mode="mock")

    assert first.input_hash == second.input_hash
