"""
Pydantic schemas for state machine input (SignalBundle) and output (StateEvaluationResult).
"""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from inbox_lifecycle.core.config import settings
from inbox_lifecycle.utils.datetime_utils import parse_iso_datetime

Confidence = Literal["HIGH", "MEDIUM", "LOW"]
Direction = Literal["inbound", "outbound"]
FollowupDueSource = Literal["customer_intent", "default", "unknown"]

# ISO-8601 string, datetime or None; unparseable values become None
Timestamp = Annotated[datetime | None, BeforeValidator(parse_iso_datetime)]


def _direction_or_none(value):
    return value if value in ("inbound", "outbound") else None


def _due_source_or_none(value):
    return value if value in ("customer_intent", "default", "unknown") else None


class Reason(BaseModel):
    """Structured reason with its own confidence (plain codes are bare strings)."""

    model_config = ConfigDict(frozen=True)

    code: str
    confidence: Confidence
    evidence: str | None = None


class ExplicitLostCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    confidence: Confidence
    evidence: str | None = None
    message_id: str | None = None


class SignalBundle(BaseModel):
    """
    Immutable snapshot of everything the state machine needs for one evaluation.

    Produced by the signal extractor; the state machine trusts it completely.
    Thresholds default to the configured values so callers only override what differs.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    now: Annotated[datetime, BeforeValidator(parse_iso_datetime)]
    previous_state: str | None = None

    message_count: int = 0
    inbound_count: int = 0
    outbound_count: int = 0
    inbound_count_non_final: int = 0

    last_inbound_at: Timestamp = None
    last_outbound_at: Timestamp = None
    last_message_at: Timestamp = None
    last_non_final_message_at: Timestamp = None
    last_non_final_direction: Annotated[
        Direction | None, BeforeValidator(_direction_or_none)
    ] = None

    has_opt_out: bool = False
    has_blocked: bool = False
    has_bounced: bool = False
    has_explicit_rejection: bool = False
    has_explicit_rejection_revival: bool = False
    has_price_rejection: bool = False
    has_price_rejection_revival: bool = False
    has_indefinite_deferral: bool = False
    has_concrete_deferral: bool = False
    has_deferral: bool = False
    has_conversion: bool = False
    has_loss_phrase: bool = False
    has_off_platform: bool = False
    has_explicit_contact: bool = False
    off_platform_reason: str | None = None
    has_price_mention: bool = False
    has_spam_phrase_match: bool = False
    spam_context_confirmed: bool = False
    has_spam_content: bool = False
    explicit_lost_candidate: ExplicitLostCandidate | None = None

    followup_due_at_from_deferral: Timestamp = None
    followup_due_source_from_deferral: Annotated[
        FollowupDueSource | None, BeforeValidator(_due_source_or_none)
    ] = None
    use_ai_deferral: bool = False
    has_deferral_season_hint: bool = False

    days_since_last_inbound: float | None = None
    days_since_last_activity: float | None = None

    sla_hours: float = Field(default_factory=lambda: settings.sla_hours)
    due_soon_days: float = Field(default_factory=lambda: settings.due_soon_days)
    inactive_timeout_days: float = Field(default_factory=lambda: settings.inactive_timeout_days)
    lost_after_price_rejection_days: float = Field(
        default_factory=lambda: settings.lost_after_price_rejection_days
    )
    lost_after_off_platform_no_contact_days: float = Field(
        default_factory=lambda: settings.lost_after_off_platform_no_contact_days
    )
    lost_after_price_days: float = Field(default_factory=lambda: settings.lost_after_price_days)
    stale_outbound_business_days: int = Field(
        default_factory=lambda: settings.stale_outbound_business_days
    )


class StateEvaluationResult(BaseModel):
    state: str
    confidence: Confidence
    reasons: list[str | Reason] = Field(default_factory=list)
    needs_followup: bool = False
    followup_suggestion: str | None = None
    followup_due_at: datetime | None = None
    followup_due_source: FollowupDueSource | None = None
    state_trigger_message_id: str | None = None

    @property
    def reason_codes(self) -> list[str]:
        return [reason_code(reason) for reason in self.reasons]


def reason_code(reason: str | Reason) -> str:
    """Code of a plain or structured reason."""
    return reason if isinstance(reason, str) else reason.code
