"""
Reason and metric key constants for the ambiguity gate and follow-up persistence.

Use these instead of string literals to ensure consistency.
"""

# ---- AI gate skip reasons ----
AI_SKIP_DISABLED = "ai_disabled"
AI_SKIP_EMPTY_MESSAGE = "empty_message"
AI_SKIP_KEYWORD_GATE = "keyword_gate"
AI_SKIP_HARD_SIGNAL = "hard_signal_present"
AI_SKIP_CACHE_HIT = "cache_hit"
AI_ELIGIBLE = "eligible"

# ---- AI budget ----
AI_BUDGET_DAILY_EXCEEDED = "daily_budget_exceeded"
AI_BUDGET_CONVERSATION_EXCEEDED = "conversation_budget_exceeded"

# ---- AI attempt outcomes ----
AI_OUTCOME_OK = "ok"
AI_OUTCOME_ERROR = "error"
AI_OUTCOME_TIMEOUT = "timeout"
AI_OUTCOME_INVALID_JSON = "invalid_json"

# ---- Metric key prefixes ----
METRIC_AI_GATE_PREFIX = "ai_gate"
METRIC_AI_ATTEMPT_PREFIX = "ai_attempt"
METRIC_FOLLOWUP_UPSERTED = "followup_events.upserted"
METRIC_FOLLOWUP_LOSS_REPAIRED = "followup_events.loss_repaired"


def ai_gate_metric_key(reason: str) -> str:
    """e.g. ai_gate.keyword_gate, ai_gate.eligible"""
    return f"{METRIC_AI_GATE_PREFIX}.{reason}"


def ai_attempt_metric_key(outcome: str) -> str:
    """e.g. ai_attempt.ok, ai_attempt.timeout"""
    return f"{METRIC_AI_ATTEMPT_PREFIX}.{outcome}"
