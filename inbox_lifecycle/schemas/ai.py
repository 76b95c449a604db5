"""
Schemas for the ambiguity classifier: its validated output and the gate's decisions.
"""

import re
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, StrictBool, StrictStr, field_validator

AiConfidence = Literal["HIGH", "MEDIUM", "LOW"]
AiHandoffType = Literal["phone", "email", "website", "in_person", "other"]
AiDeferredBucket = Literal[
    "EXACT_DATE",
    "NEXT_WEEK",
    "NEXT_MONTH",
    "NEXT_QUARTER",
    "AFTER_HOLIDAYS",
    "SOMETIME_LATER",
]

EVIDENCE_MAX_CHARS = 120
_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")


def _clip_evidence(value: str) -> str:
    return value[:EVIDENCE_MAX_CHARS]


Evidence = Annotated[StrictStr, AfterValidator(_clip_evidence)]


class HandoffInterpretation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    is_handoff: StrictBool
    type: AiHandoffType | None
    confidence: AiConfidence
    evidence: Evidence


class DeferredInterpretation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    is_deferred: StrictBool
    bucket: AiDeferredBucket | None
    due_date_iso: StrictStr | None
    confidence: AiConfidence
    evidence: Evidence

    @field_validator("due_date_iso")
    @classmethod
    def _iso_date_only(cls, value: str | None) -> str | None:
        if value is not None and not _ISO_DATE.fullmatch(value):
            raise ValueError("due_date_iso must be YYYY-MM-DD")
        return value


class AiInterpretation(BaseModel):
    """Validated classifier verdict for one message."""

    model_config = ConfigDict(extra="ignore")

    handoff: HandoffInterpretation
    deferred: DeferredInterpretation


class AiPromptInput(BaseModel):
    prompt_text: str  # Truncated text actually sent
    normalized_text: str  # Normalized form of prompt_text, used for hashing
    input_chars: int
    input_truncated: bool


class ShouldRunAiResult(BaseModel):
    run: bool
    reason: str
    needs_handoff: bool = False
    needs_deferred: bool = False


class AiBudgetDecision(BaseModel):
    allowed: bool
    reason: str | None = None


class AiAttemptResult(BaseModel):
    input_hash: str
    input_chars: int
    input_truncated: bool
    interpretation: AiInterpretation | None = None
    skipped_reason: str | None = None
    errors: list[str] = []
    attempted: bool = False
    attempt_outcome: str | None = None
    daily_calls: int = 0
    conversation_calls: int = 0
    cache_hit: bool = False
