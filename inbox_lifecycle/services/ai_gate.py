"""
Ambiguity interpretation gate - decides when the free-text classifier may run,
builds its prompt, and validates what comes back.

The classifier itself is an injected callable ``runtime(model, prompt_messages, options)``;
this module never performs network I/O.
"""

import hashlib
import json
import logging
import re
from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, date, datetime, timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from inbox_lifecycle.constants.event_types import (
    AI_BUDGET_CONVERSATION_EXCEEDED,
    AI_BUDGET_DAILY_EXCEEDED,
    AI_ELIGIBLE,
    AI_SKIP_DISABLED,
    AI_SKIP_EMPTY_MESSAGE,
    AI_SKIP_HARD_SIGNAL,
    AI_SKIP_KEYWORD_GATE,
)
from inbox_lifecycle.schemas.ai import (
    EVIDENCE_MAX_CHARS,
    AiBudgetDecision,
    AiInterpretation,
    AiPromptInput,
    ShouldRunAiResult,
)
from inbox_lifecycle.schemas.messages import MessageFeatures
from inbox_lifecycle.utils.datetime_utils import dt_replace_utc

logger = logging.getLogger(__name__)

AI_KEYWORDS_PATH = Path(__file__).parent.parent / "config" / "ai_keywords.yml"

AI_MODE_OFF = "off"
AI_MODE_RUNTIME = "runtime"
AI_MODE_MOCK = "mock"
AI_MODES = (AI_MODE_OFF, AI_MODE_RUNTIME, AI_MODE_MOCK)

CONTEXT_DIGEST_LIMIT = 4
CONTEXT_TEXT_MAX_CHARS = 120
DEFAULT_MAX_OUTPUT_TOKENS = 128
DEFAULT_TIMEOUT_MS = 8000

SYSTEM_PROMPT = "Return valid JSON only. No prose. If unsure set LOW confidence and prefer false."

JSON_SCHEMA_HINT = """Return JSON only in this exact shape:
{
  "handoff": {
    "is_handoff": true|false,
    "type": "phone"|"email"|"website"|"in_person"|"other"|null,
    "confidence": "HIGH"|"MEDIUM"|"LOW",
    "evidence": "short excerpt"
  },
  "deferred": {
    "is_deferred": true|false,
    "bucket": "EXACT_DATE"|"NEXT_WEEK"|"NEXT_MONTH"|"NEXT_QUARTER"|"AFTER_HOLIDAYS"|"SOMETIME_LATER"|null,
    "due_date_iso": "YYYY-MM-DD"|null,
    "confidence": "HIGH"|"MEDIUM"|"LOW",
    "evidence": "short excerpt"
  }
}"""

_MOCK_DEFERRED = re.compile(r"(next month|after the holidays|after holidays|next week|next quarter|next year)")
_MOCK_HANDOFF = re.compile(r"(call me|text me|reach out|contact me|phone|whatsapp)")
_WHITESPACE = re.compile(r"\s+")


class AiRuntimeMissingError(RuntimeError):
    """Runtime mode was selected but no classifier callable was injected."""


class AiInvalidOutputError(ValueError):
    """The classifier answered, but not in the required shape."""


def _get_default_keywords() -> dict[str, list[str]]:
    return {
        "handoff": ["call", "phone", "text", "email", "contact me", "whatsapp"],
        "deferred": ["next", "later", "after", "holiday", "month", "week", "year"],
    }


@lru_cache(maxsize=1)
def load_ai_keywords() -> dict[str, list[str]]:
    """
    Load handoff / deferred gate keywords from YAML.
    Cached for performance; falls back to a short built-in list.
    """
    try:
        if AI_KEYWORDS_PATH.exists():
            with open(AI_KEYWORDS_PATH, encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
            logger.info(f"Loaded AI gate keywords from {AI_KEYWORDS_PATH}")
            return {
                group: [str(word).lower() for word in raw.get(group) or []]
                for group in ("handoff", "deferred")
            }
        logger.warning(f"AI keyword file not found at {AI_KEYWORDS_PATH}, using defaults")
    except Exception as e:
        logger.error(f"Failed to load AI keywords: {e}, using defaults")
    return _get_default_keywords()


def get_ai_mode(raw: str | None) -> str:
    """Normalize a configured mode; anything unrecognized disables the classifier."""
    value = (raw or "").strip().lower()
    return value if value in AI_MODES else AI_MODE_OFF


def normalize_text(value: str) -> str:
    return _WHITESPACE.sub(" ", value.strip().lower())


def get_ai_prompt_input(message_text: str, max_input_chars: int) -> AiPromptInput:
    """
    Truncate message text to the input budget.

    Truncation is a plain left-to-right slice, so equal prefixes always produce
    equal prompt text (and therefore equal hashes).
    """
    safe_max = max(1, int(max_input_chars))
    truncated = len(message_text) > safe_max
    prompt_text = message_text[:safe_max] if truncated else message_text
    return AiPromptInput(
        prompt_text=prompt_text,
        normalized_text=normalize_text(prompt_text),
        input_chars=len(prompt_text),
        input_truncated=truncated,
    )


def build_context_digest(
    messages: Sequence[Mapping[str, Any]], limit: int = CONTEXT_DIGEST_LIMIT
) -> str:
    """
    Compact "direction:text" rendering of the last few messages.

    Each text longer than 120 characters is clipped to 117 plus "...".
    """
    parts = []
    for message in list(messages)[-limit:] if limit > 0 else []:
        text = message.get("text") or ""
        if len(text) > CONTEXT_TEXT_MAX_CHARS:
            text = f"{text[: CONTEXT_TEXT_MAX_CHARS - 3]}..."
        parts.append(f"{message.get('direction')}:{text}")
    return " | ".join(parts)


def build_input_seed(
    prompt_input: AiPromptInput, prompt_version: str, model: str, context_digest: str
) -> str:
    return f"{prompt_input.normalized_text}|{prompt_version}|{model}|{context_digest}"


def compute_input_hash(seed: str) -> str:
    """SHA-256 hex digest of the cache seed."""
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()


def _features_dict(features: MessageFeatures | Mapping[str, Any] | None) -> dict[str, Any]:
    if features is None:
        return {}
    if isinstance(features, MessageFeatures):
        return features.model_dump(exclude_none=True)
    return dict(features)


def should_run_ai(
    message_text: str | None,
    extracted_features: MessageFeatures | Mapping[str, Any] | None,
    mode: str,
) -> ShouldRunAiResult:
    """
    Decide whether a message is ambiguous enough to spend a classifier call on.

    Returns:
        ShouldRunAiResult with run flag, reason, and which interpretations are still needed
    """
    if mode == AI_MODE_OFF:
        return ShouldRunAiResult(run=False, reason=AI_SKIP_DISABLED)

    normalized = normalize_text(message_text or "")
    if not normalized:
        return ShouldRunAiResult(run=False, reason=AI_SKIP_EMPTY_MESSAGE)

    keywords = load_ai_keywords()
    handoff_keyword = any(word in normalized for word in keywords["handoff"])
    deferred_keyword = any(word in normalized for word in keywords["deferred"])
    if not handoff_keyword and not deferred_keyword:
        return ShouldRunAiResult(run=False, reason=AI_SKIP_KEYWORD_GATE)

    features = _features_dict(extracted_features)
    needs_handoff = (
        handoff_keyword and not features.get("has_phone_number") and not features.get("has_email")
    )
    needs_deferred = deferred_keyword and not features.get("deferral_date_hint")
    if not needs_handoff and not needs_deferred:
        return ShouldRunAiResult(run=False, reason=AI_SKIP_HARD_SIGNAL)

    return ShouldRunAiResult(
        run=True,
        reason=AI_ELIGIBLE,
        needs_handoff=needs_handoff,
        needs_deferred=needs_deferred,
    )


def should_allow_ai_call(
    daily_calls: int,
    conversation_calls: int,
    max_daily: int,
    max_per_conversation: int,
) -> AiBudgetDecision:
    """Both budgets must have headroom. Exhaustion is a normal decision, not an error."""
    if daily_calls >= max_daily:
        return AiBudgetDecision(allowed=False, reason=AI_BUDGET_DAILY_EXCEEDED)
    if conversation_calls >= max_per_conversation:
        return AiBudgetDecision(allowed=False, reason=AI_BUDGET_CONVERSATION_EXCEEDED)
    return AiBudgetDecision(allowed=True)


def build_prompt_messages(
    prompt_input: AiPromptInput,
    context_digest: str,
    extracted_features: MessageFeatures | Mapping[str, Any] | None = None,
) -> list[dict[str, str]]:
    """Chat-style prompt. Only the truncated text is ever embedded."""
    features_json = json.dumps(_features_dict(extracted_features), sort_keys=True, default=str)
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": (
                f"{JSON_SCHEMA_HINT}\n\nMessage:\n{prompt_input.prompt_text}"
                f"\n\nContext:\n{context_digest}\n\nExtracted features:\n{features_json}"
            ),
        },
    ]


def build_runtime_options(max_output_tokens: int, timeout_ms: int) -> dict[str, Any]:
    """Generation options handed to the runtime alongside the prompt."""
    return {"max_tokens": int(max_output_tokens), "temperature": 0, "timeout_ms": int(timeout_ms)}


def validate_ai_output(raw: Any) -> AiInterpretation | None:
    """
    Validate classifier output (JSON string or already-decoded object).

    Returns:
        AiInterpretation, or None for anything malformed (never raises)
    """
    obj = raw
    if isinstance(raw, (str, bytes)):
        try:
            obj = json.loads(raw)
        except ValueError:
            return None
    if not isinstance(obj, dict):
        return None
    try:
        return AiInterpretation.model_validate(obj)
    except ValidationError as e:
        logger.debug(f"Classifier output rejected: {e.error_count()} validation errors")
        return None


def map_deferred_bucket_to_date(bucket: str | None, now: datetime) -> str:
    """
    Turn a coarse deferral bucket into a concrete YYYY-MM-DD date relative to now (UTC).

    AFTER_HOLIDAYS resolves to January 15th of next year from November onwards.
    """
    now = dt_replace_utc(now).astimezone(UTC)
    if bucket == "NEXT_WEEK":
        target = now + timedelta(days=7)
    elif bucket == "NEXT_MONTH":
        target = now + timedelta(days=30)
    elif bucket == "NEXT_QUARTER":
        target = now + timedelta(days=90)
    elif bucket == "AFTER_HOLIDAYS":
        if now.month >= 11:
            return date(now.year + 1, 1, 15).isoformat()
        target = now + timedelta(days=60)
    else:
        target = now + timedelta(days=30)
    return target.date().isoformat()


def _mock_interpretation(prompt_input: AiPromptInput) -> AiInterpretation:
    """Deterministic keyword heuristics standing in for the classifier (local dev and tests)."""
    text = prompt_input.normalized_text
    is_deferred = bool(_MOCK_DEFERRED.search(text))
    if "next month" in text:
        bucket = "NEXT_MONTH"
    elif "next week" in text:
        bucket = "NEXT_WEEK"
    elif "next quarter" in text:
        bucket = "NEXT_QUARTER"
    elif "holiday" in text:
        bucket = "AFTER_HOLIDAYS"
    else:
        bucket = "SOMETIME_LATER"
    is_handoff = bool(_MOCK_HANDOFF.search(text))
    excerpt = prompt_input.prompt_text[:EVIDENCE_MAX_CHARS]
    return AiInterpretation.model_validate(
        {
            "handoff": {
                "is_handoff": is_handoff,
                "type": "phone" if is_handoff else None,
                "confidence": "MEDIUM" if is_handoff else "LOW",
                "evidence": excerpt if is_handoff else "",
            },
            "deferred": {
                "is_deferred": is_deferred,
                "bucket": bucket if is_deferred else None,
                "due_date_iso": None,
                "confidence": "MEDIUM" if is_deferred else "LOW",
                "evidence": excerpt if is_deferred else "",
            },
        }
    )


def interpret_ambiguity(
    message_text: str,
    mode: str,
    model: str,
    max_input_chars: int,
    context_digest: str = "",
    extracted_features: MessageFeatures | Mapping[str, Any] | None = None,
    runtime: Callable[[str, list[dict[str, str]], dict[str, Any]], Any] | None = None,
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
) -> AiInterpretation | None:
    """
    Interpret one ambiguous message.

    Args:
        message_text: Raw message text (truncated here before use)
        mode: off | runtime | mock
        model: Classifier model id passed to the runtime
        max_input_chars: Input budget
        context_digest: Output of build_context_digest
        extracted_features: Features already extracted by rules
        runtime: Injected classifier callable (model, prompt_messages, options) -> response
        max_output_tokens: Passed to the runtime as options["max_tokens"]
        timeout_ms: Passed to the runtime as options["timeout_ms"]; enforcing it is the runtime's job

    Returns:
        AiInterpretation, or None when there is nothing to interpret

    Raises:
        AiRuntimeMissingError: runtime mode without a runtime
        AiInvalidOutputError: runtime answered in the wrong shape
    """
    prompt_input = get_ai_prompt_input(message_text, max_input_chars)
    if not prompt_input.normalized_text:
        return None

    if mode == AI_MODE_MOCK:
        return _mock_interpretation(prompt_input)

    if mode == AI_MODE_RUNTIME:
        if runtime is None:
            raise AiRuntimeMissingError("ai_runtime_missing")
        prompt_messages = build_prompt_messages(prompt_input, context_digest, extracted_features)
        options = build_runtime_options(max_output_tokens, timeout_ms)
        response = runtime(model, prompt_messages, options)
        payload = response
        if isinstance(response, dict) and response.get("response") is not None:
            payload = response["response"]
        interpretation = validate_ai_output(payload)
        if interpretation is None:
            raise AiInvalidOutputError("ai_invalid_output")
        return interpretation

    return None
