"""
In-process counters for gate decisions and follow-up persistence.

Tracks:
- AI gate decisions (skip reasons, eligible)
- AI attempt outcomes
- Follow-up events upserted / loss flags repaired
"""
import logging
from collections import defaultdict
from datetime import UTC, datetime
from threading import Lock
from typing import Any

from inbox_lifecycle.constants.event_types import (
    METRIC_AI_ATTEMPT_PREFIX,
    METRIC_AI_GATE_PREFIX,
    METRIC_FOLLOWUP_LOSS_REPAIRED,
    METRIC_FOLLOWUP_UPSERTED,
    ai_attempt_metric_key,
    ai_gate_metric_key,
)

logger = logging.getLogger(__name__)

# In-memory metrics (per process)
_metrics_lock = Lock()
_metrics: dict[str, int] = defaultdict(int)
_metrics_timestamps: dict[str, datetime] = {}


def _increment(key: str, amount: int = 1) -> None:
    with _metrics_lock:
        _metrics[key] += amount
        _metrics_timestamps[f"{key}.last"] = datetime.now(UTC)


def record_ai_gate_decision(reason: str) -> None:
    """
    Record why the gate did (or did not) let a message through.

    Args:
        reason: Gate reason (e.g. "keyword_gate", "cache_hit", "eligible")
    """
    _increment(ai_gate_metric_key(reason))


def record_ai_attempt(outcome: str) -> None:
    """Record a classifier call outcome (ok, error, timeout, invalid_json)."""
    _increment(ai_attempt_metric_key(outcome))
    if outcome != "ok":
        logger.info(f"AI attempt finished with outcome: {outcome}")


def record_followup_events_upserted(count: int) -> None:
    if count > 0:
        _increment(METRIC_FOLLOWUP_UPSERTED, count)


def record_followup_loss_flags_repaired(count: int) -> None:
    if count > 0:
        _increment(METRIC_FOLLOWUP_LOSS_REPAIRED, count)


def get_metrics() -> dict[str, Any]:
    """
    Get current metrics snapshot.

    Returns:
        dict with metrics counts and last event timestamps
    """
    with _metrics_lock:
        return {
            "counts": dict(_metrics),
            "last_events": {k: v.isoformat() for k, v in _metrics_timestamps.items()},
        }


def reset_metrics() -> None:
    """Reset all metrics (useful for testing)."""
    with _metrics_lock:
        _metrics.clear()
        _metrics_timestamps.clear()


def get_metrics_summary() -> str:
    """
    Get a human-readable metrics summary.

    Returns:
        Formatted string with metrics summary
    """
    metrics = get_metrics()
    lines = ["=== Metrics Summary ==="]

    gate = {k: v for k, v in metrics["counts"].items() if k.startswith(f"{METRIC_AI_GATE_PREFIX}.")}
    attempts = {
        k: v for k, v in metrics["counts"].items() if k.startswith(f"{METRIC_AI_ATTEMPT_PREFIX}.")
    }
    followups = {k: v for k, v in metrics["counts"].items() if k.startswith("followup_events.")}

    if gate:
        lines.append("\nAI Gate Decisions:")
        for key, count in sorted(gate.items()):
            lines.append(f"  {key.removeprefix(METRIC_AI_GATE_PREFIX + '.')}: {count}")

    if attempts:
        lines.append("\nAI Attempts:")
        for key, count in sorted(attempts.items()):
            lines.append(f"  {key.removeprefix(METRIC_AI_ATTEMPT_PREFIX + '.')}: {count}")

    if followups:
        lines.append("\nFollow-up Events:")
        for key, count in sorted(followups.items()):
            lines.append(f"  {key.removeprefix('followup_events.')}: {count}")

    if not any([gate, attempts, followups]):
        lines.append("\nNo metrics recorded yet.")

    return "\n".join(lines)
