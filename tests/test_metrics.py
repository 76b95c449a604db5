"""
Tests for metrics and monitoring.
"""

from inbox_lifecycle.services.metrics.counters import (
    get_metrics,
    get_metrics_summary,
    record_ai_attempt,
    record_ai_gate_decision,
    record_followup_events_upserted,
    record_followup_loss_flags_repaired,
    reset_metrics,
)


def test_record_ai_gate_decision():
    """Test recording gate decisions."""
    reset_metrics()

    record_ai_gate_decision("keyword_gate")
    record_ai_gate_decision("keyword_gate")
    record_ai_gate_decision("eligible")

    metrics = get_metrics()
    assert metrics["counts"]["ai_gate.keyword_gate"] == 2
    assert metrics["counts"]["ai_gate.eligible"] == 1
    assert "ai_gate.eligible.last" in metrics["last_events"]


def test_record_ai_attempt():
    """Test recording classifier attempt outcomes."""
    reset_metrics()

    record_ai_attempt("ok")
    record_ai_attempt("timeout")

    metrics = get_metrics()
    assert metrics["counts"]["ai_attempt.ok"] == 1
    assert metrics["counts"]["ai_attempt.timeout"] == 1


def test_followup_counters_ignore_zero():
    """Zero-sized batches do not create counters."""
    reset_metrics()

    record_followup_events_upserted(0)
    record_followup_loss_flags_repaired(0)
    assert get_metrics()["counts"] == {}

    record_followup_events_upserted(3)
    record_followup_loss_flags_repaired(2)
    counts = get_metrics()["counts"]
    assert counts["followup_events.upserted"] == 3
    assert counts["followup_events.loss_repaired"] == 2


def test_get_metrics_summary():
    """Test getting metrics summary."""
    reset_metrics()

    record_ai_gate_decision("cache_hit")
    record_ai_attempt("invalid_json")
    record_followup_events_upserted(4)

    summary = get_metrics_summary()
    assert "=== Metrics Summary ===" in summary
    assert "AI Gate Decisions:" in summary
    assert "cache_hit: 1" in summary
    assert "invalid_json: 1" in summary
    assert "upserted: 4" in summary


def test_empty_metrics_summary():
    """Test summary with no metrics."""
    reset_metrics()

    assert "No metrics recorded yet." in get_metrics_summary()


def test_reset_metrics():
    """Test resetting metrics."""
    record_ai_attempt("error")
    assert get_metrics()["counts"]

    reset_metrics()

    metrics = get_metrics()
    assert metrics["counts"] == {}
    assert metrics["last_events"] == {}
