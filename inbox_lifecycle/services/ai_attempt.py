"""
Classifier attempt orchestration: hash, gate, cache, budget, call, record outcome.

Counter mutation is delegated to the injected increment_usage callable so the
storage layer can do it atomically; this module only reads the counts it is given.
"""

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from inbox_lifecycle.constants.event_types import (
    AI_OUTCOME_ERROR,
    AI_OUTCOME_INVALID_JSON,
    AI_OUTCOME_OK,
    AI_OUTCOME_TIMEOUT,
    AI_SKIP_CACHE_HIT,
)
from inbox_lifecycle.core.config import settings
from inbox_lifecycle.schemas.ai import AiAttemptResult, AiInterpretation
from inbox_lifecycle.schemas.messages import MessageFeatures
from inbox_lifecycle.services.ai_gate import (
    AI_MODE_RUNTIME,
    AiInvalidOutputError,
    build_input_seed,
    compute_input_hash,
    get_ai_mode,
    get_ai_prompt_input,
    interpret_ambiguity,
    should_allow_ai_call,
    should_run_ai,
    validate_ai_output,
)
from inbox_lifecycle.services.metrics.counters import record_ai_attempt, record_ai_gate_decision

logger = logging.getLogger(__name__)


def classify_attempt_outcome(error: BaseException) -> str:
    """Map a classifier failure to ok / error / timeout / invalid_json."""
    if isinstance(error, TimeoutError):
        return AI_OUTCOME_TIMEOUT
    if isinstance(error, AiInvalidOutputError):
        return AI_OUTCOME_INVALID_JSON
    message = str(error).lower()
    if "abort" in message or "timeout" in message:
        return AI_OUTCOME_TIMEOUT
    if "invalid" in message:
        return AI_OUTCOME_INVALID_JSON
    return AI_OUTCOME_ERROR


def _cached_interpretation(existing_ai: Mapping[str, Any] | None, input_hash: str):
    if not existing_ai or existing_ai.get("input_hash") != input_hash:
        return None
    cached = existing_ai.get("interpretation")
    if isinstance(cached, AiInterpretation):
        return cached
    if isinstance(cached, dict):
        return validate_ai_output(cached)
    return None


def run_ai_attempt(
    message_text: str,
    context_digest: str,
    extracted_features: MessageFeatures | Mapping[str, Any] | None,
    daily_calls: int,
    conversation_calls: int,
    increment_usage: Callable[[], None],
    existing_ai: Mapping[str, Any] | None = None,
    runtime: Callable[[str, Sequence[dict[str, str]], dict[str, Any]], Any] | None = None,
    mode: str | None = None,
) -> AiAttemptResult:
    """
    Run the classifier for one message if the gate, cache and budgets allow it.

    In runtime mode usage is counted before the call (a paid call counts even if it fails);
    in mock mode only successful interpretations are counted.

    Args:
        message_text: Raw message text
        context_digest: Output of build_context_digest
        extracted_features: Rule-extracted features for the message
        daily_calls: Current daily call count
        conversation_calls: Current per-conversation call count
        increment_usage: Atomically bumps both usage counters
        existing_ai: Previously stored {"input_hash", "interpretation"} for this message
        runtime: Injected classifier callable (model, prompt_messages, options)
        mode: Overrides the configured classifier mode

    Returns:
        AiAttemptResult (never raises for classifier failures)
    """
    mode = get_ai_mode(mode if mode is not None else settings.classifier_ai_mode)
    model = settings.classifier_ai_model

    prompt_input = get_ai_prompt_input(message_text, settings.classifier_ai_max_input_chars)
    seed = build_input_seed(
        prompt_input, settings.classifier_ai_prompt_version, model, context_digest
    )
    result = AiAttemptResult(
        input_hash=compute_input_hash(seed),
        input_chars=prompt_input.input_chars,
        input_truncated=prompt_input.input_truncated,
        daily_calls=daily_calls,
        conversation_calls=conversation_calls,
    )

    decision = should_run_ai(message_text, extracted_features, mode)
    if not decision.run:
        result.skipped_reason = decision.reason
        record_ai_gate_decision(decision.reason)
        return result

    cached = _cached_interpretation(existing_ai, result.input_hash)
    if cached is not None:
        result.interpretation = cached
        result.skipped_reason = AI_SKIP_CACHE_HIT
        result.cache_hit = True
        record_ai_gate_decision(AI_SKIP_CACHE_HIT)
        return result

    budget = should_allow_ai_call(
        daily_calls,
        conversation_calls,
        settings.classifier_ai_daily_budget_calls,
        settings.classifier_ai_max_calls_per_conversation_per_day,
    )
    if not budget.allowed:
        result.skipped_reason = budget.reason
        record_ai_gate_decision(budget.reason)
        return result

    record_ai_gate_decision(decision.reason)
    result.attempted = True
    if mode == AI_MODE_RUNTIME:
        increment_usage()
        result.daily_calls += 1
        result.conversation_calls += 1

    try:
        interpretation = interpret_ambiguity(
            message_text,
            mode=mode,
            model=model,
            max_input_chars=settings.classifier_ai_max_input_chars,
            context_digest=context_digest,
            extracted_features=extracted_features,
            runtime=runtime,
            max_output_tokens=settings.classifier_ai_max_output_tokens,
            timeout_ms=settings.classifier_ai_timeout_ms,
        )
    except Exception as e:
        result.errors = [str(e) or type(e).__name__]
        result.attempt_outcome = classify_attempt_outcome(e)
        record_ai_attempt(result.attempt_outcome)
        logger.warning(f"Classifier attempt failed ({result.attempt_outcome}): {e}")
        return result

    result.interpretation = interpretation
    result.attempt_outcome = AI_OUTCOME_OK
    record_ai_attempt(AI_OUTCOME_OK)
    if mode != AI_MODE_RUNTIME and interpretation is not None:
        increment_usage()
        result.daily_calls += 1
        result.conversation_calls += 1
    return result
