"""
Conversation state machine - derives lifecycle state and follow-up recommendation.

Pure function over a SignalBundle (no DB, no IO, no ambient clock).

Precedence is an ordered list of guard/outcome rules evaluated top-to-bottom;
the first matching rule wins. Staleness rules then may force LOST, and a final
post-processing step clears follow-up fields for terminal states.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from inbox_lifecycle.constants.reasons import (
    DUE_SOURCE_CUSTOMER_INTENT,
    DUE_SOURCE_DEFAULT,
    DUE_SOURCE_UNKNOWN,
    FOLLOWUP_REASONS,
    REASON_AI_DEFERRED,
    REASON_BLOCKED_BY_RECIPIENT,
    REASON_BOUNCED,
    REASON_CONVERSION_PHRASE,
    REASON_DEFERRAL_PHRASE,
    REASON_DEFERRAL_SEASON_PARSED,
    REASON_EXPLICIT_REJECTION,
    REASON_INBOUND_STALE,
    REASON_INDEFINITE_DEFERRAL,
    REASON_LOSS_PHRASE,
    REASON_LOST_INACTIVE_TIMEOUT,
    REASON_OFF_PLATFORM_NO_CONTACT_INFO,
    REASON_OFF_PLATFORM_STALE,
    REASON_OPT_OUT,
    REASON_PRICE_MENTION,
    REASON_PRICE_REJECTION,
    REASON_PRICE_REJECTION_STALE,
    REASON_PRICE_STALE,
    REASON_SLA_BREACH,
    REASON_SPAM_CONTENT,
    REASON_SPAM_CONTEXT_CONFIRMED,
    REASON_SPAM_PHRASE_MATCH,
    REASON_UNREPLIED,
    REASON_WAIT_TO_PROCEED,
    SUGGESTION_FOLLOW_UP_LATER,
    SUGGESTION_FOLLOW_UP_NOW,
    SUGGESTION_REPLY_RECOMMENDED,
    SUGGESTION_VISIBILITY_LOST,
)
from inbox_lifecycle.constants.states import (
    CONFIDENCE_HIGH,
    CONFIDENCE_LOW,
    CONFIDENCE_MEDIUM,
    STATE_CONVERTED,
    STATE_DEFERRED,
    STATE_ENGAGED,
    STATE_LOST,
    STATE_NEW,
    STATE_OFF_PLATFORM,
    STATE_PRICE_GIVEN,
    STATE_SPAM,
    TERMINAL_STATES,
)
from inbox_lifecycle.schemas.signals import (
    Reason,
    SignalBundle,
    StateEvaluationResult,
    reason_code,
)
from inbox_lifecycle.services.business_calendar import BusinessCalendar, get_business_calendar

logger = logging.getLogger(__name__)

# State semantics (for documentation)
STATE_SEMANTICS = {
    STATE_NEW: "No two-way exchange yet",
    STATE_ENGAGED: "Customer and business have both sent messages",
    STATE_PRICE_GIVEN: "A price was mentioned; waiting on the customer's decision",
    STATE_DEFERRED: "Customer asked to be contacted later",
    STATE_OFF_PLATFORM: "Conversation moved to another channel (phone/email exchanged)",
    STATE_SPAM: "Spam phrase matched and confirmed by context - terminal",
    STATE_CONVERTED: "Customer converted - terminal success state",
    STATE_LOST: "Customer rejected, opted out, blocked, or went silent - terminal",
}


@dataclass
class StateOutcome:
    state: str
    confidence: str
    reasons: list = field(default_factory=list)
    trigger_message_id: str | None = None


@dataclass(frozen=True)
class StateRule:
    """Guard + outcome pair; the first rule whose guard matches decides the state."""

    name: str
    applies: Callable[[SignalBundle], bool]
    outcome: Callable[[SignalBundle], StateOutcome]


@dataclass(frozen=True)
class StalenessRule:
    """Forces LOST when a non-terminal conversation has gone quiet for too long."""

    name: str
    applies: Callable[[SignalBundle, str], bool]
    reasons: tuple
    confidence: str = CONFIDENCE_HIGH
    replace_reasons: bool = True


def _lost(*codes: str, confidence: str = CONFIDENCE_HIGH) -> Callable[[SignalBundle], StateOutcome]:
    return lambda bundle: StateOutcome(STATE_LOST, confidence, list(codes))


def _explicit_lost_outcome(bundle: SignalBundle) -> StateOutcome:
    candidate = bundle.explicit_lost_candidate
    return StateOutcome(
        STATE_LOST,
        candidate.confidence,
        [Reason(code=candidate.code, confidence=candidate.confidence, evidence=candidate.evidence)],
        trigger_message_id=candidate.message_id,
    )


def _price_rejection_outcome(bundle: SignalBundle) -> StateOutcome:
    reasons = [REASON_PRICE_REJECTION]
    if bundle.has_indefinite_deferral:
        reasons.append(REASON_WAIT_TO_PROCEED)
    return StateOutcome(STATE_LOST, CONFIDENCE_HIGH, reasons)


def _spam_outcome(bundle: SignalBundle) -> StateOutcome:
    reasons = [REASON_SPAM_PHRASE_MATCH, REASON_SPAM_CONTEXT_CONFIRMED]
    if bundle.has_spam_content:
        reasons.append(REASON_SPAM_CONTENT)
    return StateOutcome(STATE_SPAM, CONFIDENCE_HIGH, reasons)


def _off_platform_outcome(bundle: SignalBundle) -> StateOutcome:
    reasons = [bundle.off_platform_reason] if bundle.off_platform_reason else []
    return StateOutcome(STATE_OFF_PLATFORM, CONFIDENCE_MEDIUM, reasons)


# Precedence order: first match wins
STATE_RULES: tuple[StateRule, ...] = (
    StateRule("blocked", lambda s: s.has_blocked, _lost(REASON_BLOCKED_BY_RECIPIENT)),
    StateRule("bounced", lambda s: s.has_bounced, _lost(REASON_BOUNCED)),
    StateRule("opt_out", lambda s: s.has_opt_out, _lost(REASON_OPT_OUT)),
    StateRule(
        "explicit_rejection",
        lambda s: s.has_explicit_rejection and not s.has_explicit_rejection_revival,
        _lost(REASON_EXPLICIT_REJECTION),
    ),
    StateRule(
        "explicit_lost_candidate",
        lambda s: s.explicit_lost_candidate is not None,
        _explicit_lost_outcome,
    ),
    StateRule(
        "price_rejection",
        lambda s: s.has_price_rejection and not s.has_price_rejection_revival,
        _price_rejection_outcome,
    ),
    StateRule(
        "indefinite_deferral",
        lambda s: s.has_indefinite_deferral and not s.has_concrete_deferral,
        _lost(REASON_INDEFINITE_DEFERRAL, confidence=CONFIDENCE_MEDIUM),
    ),
    # A matched spam phrase alone is not enough; context must confirm it
    StateRule(
        "spam",
        lambda s: s.has_spam_phrase_match and s.spam_context_confirmed,
        _spam_outcome,
    ),
    StateRule(
        "conversion",
        lambda s: s.has_conversion,
        lambda s: StateOutcome(STATE_CONVERTED, CONFIDENCE_HIGH, [REASON_CONVERSION_PHRASE]),
    ),
    StateRule("loss_phrase", lambda s: s.has_loss_phrase, _lost(REASON_LOSS_PHRASE)),
    StateRule("off_platform", lambda s: s.has_off_platform, _off_platform_outcome),
)


def _days_since(bundle: SignalBundle, moment: datetime | None) -> float | None:
    if moment is None:
        return None
    return (bundle.now - moment).total_seconds() / 86400


def _price_stale(bundle: SignalBundle, state: str) -> bool:
    if state != STATE_PRICE_GIVEN:
        return False
    days = _days_since(bundle, bundle.last_outbound_at or bundle.last_inbound_at)
    return days is not None and days > bundle.lost_after_price_days


STALENESS_RULES: tuple[StalenessRule, ...] = (
    StalenessRule(
        "off_platform_no_contact",
        lambda s, state: (
            state == STATE_OFF_PLATFORM
            and not s.has_explicit_contact
            and s.days_since_last_activity is not None
            and s.days_since_last_activity >= s.lost_after_off_platform_no_contact_days
        ),
        (REASON_OFF_PLATFORM_NO_CONTACT_INFO, REASON_OFF_PLATFORM_STALE),
        confidence=CONFIDENCE_MEDIUM,
    ),
    StalenessRule(
        "price_rejection_revival",
        lambda s, state: (
            state != STATE_OFF_PLATFORM
            and s.has_price_rejection
            and s.days_since_last_inbound is not None
            and s.days_since_last_inbound >= s.lost_after_price_rejection_days
        ),
        (REASON_PRICE_REJECTION_STALE,),
        replace_reasons=False,
    ),
    # Customer silence is measured from last inbound, not last activity.
    # Revived explicit rejections get no exemption.
    StalenessRule(
        "inbound",
        lambda s, state: (
            state != STATE_OFF_PLATFORM
            and s.days_since_last_inbound is not None
            and s.days_since_last_inbound >= s.inactive_timeout_days
        ),
        (REASON_INBOUND_STALE, Reason(code=REASON_LOST_INACTIVE_TIMEOUT, confidence=CONFIDENCE_HIGH)),
    ),
    StalenessRule(
        "price_given",
        _price_stale,
        (REASON_PRICE_STALE,),
        confidence=CONFIDENCE_MEDIUM,
        replace_reasons=False,
    ),
)


def is_terminal_state(state: str) -> bool:
    """
    Check if a state is terminal with respect to follow-up.

    Args:
        state: State to check

    Returns:
        True if no follow-up is ever suggested for this state
    """
    return state in TERMINAL_STATES


def get_state_semantics(state: str) -> str | None:
    """Semantic meaning of a state (for documentation/debugging)."""
    return STATE_SEMANTICS.get(state)


def has_future_deferral_due(bundle: SignalBundle) -> bool:
    """
    True if a deferral-derived due date lies in the future.

    Any source tag counts: the customer already has a future touchpoint.
    """
    due_at = bundle.followup_due_at_from_deferral
    return due_at is not None and due_at > bundle.now


def resolve_progress_state(bundle: SignalBundle) -> StateOutcome:
    """Non-terminal fallback when no precedence rule matched."""
    if bundle.has_deferral:
        reasons = []
        if bundle.use_ai_deferral:
            reasons.append(REASON_AI_DEFERRED)
        else:
            reasons.append(REASON_DEFERRAL_PHRASE)
            if bundle.has_deferral_season_hint:
                reasons.append(REASON_DEFERRAL_SEASON_PARSED)
        return StateOutcome(STATE_DEFERRED, CONFIDENCE_MEDIUM, reasons)
    if bundle.has_price_mention:
        return StateOutcome(STATE_PRICE_GIVEN, CONFIDENCE_MEDIUM, [REASON_PRICE_MENTION])
    if bundle.inbound_count >= 1 and bundle.outbound_count >= 1:
        return StateOutcome(STATE_ENGAGED, CONFIDENCE_LOW)
    return StateOutcome(STATE_NEW, CONFIDENCE_LOW)


def match_state_rule(bundle: SignalBundle) -> tuple[str, StateOutcome]:
    """
    Evaluate STATE_RULES in order and return (rule name, outcome) of the first match.

    Falls through to the progress states when nothing matches.
    """
    for rule in STATE_RULES:
        if rule.applies(bundle):
            return rule.name, rule.outcome(bundle)
    return "progress", resolve_progress_state(bundle)


def match_staleness_rule(bundle: SignalBundle, state: str) -> StalenessRule | None:
    """
    Return the first staleness rule that forces LOST, or None.

    Outbound-only threads are exempt (nothing to be stale relative to), as are
    conversations with a future deferral due date.
    """
    if is_terminal_state(state) or bundle.inbound_count <= 0:
        return None
    if has_future_deferral_due(bundle):
        return None
    for rule in STALENESS_RULES:
        if rule.applies(bundle, state):
            return rule
    return None


def _due_soon(bundle: SignalBundle, due_at: datetime) -> bool:
    window = timedelta(hours=max(bundle.sla_hours, bundle.due_soon_days * 24))
    return due_at - bundle.now <= window


def evaluate_conversation_state(
    bundle: SignalBundle,
    calendar: BusinessCalendar | None = None,
) -> StateEvaluationResult:
    """
    Derive state, reasons and follow-up recommendation for one conversation.

    Never raises for any flag combination: precedence alone resolves conflicts.

    Args:
        bundle: Signal snapshot (carries its own clock and thresholds)
        calendar: Business-day calendar for outbound staleness (defaults to configured)

    Returns:
        StateEvaluationResult
    """
    calendar = calendar or get_business_calendar()

    rule_name, outcome = match_state_rule(bundle)
    state = outcome.state
    confidence = outcome.confidence
    reasons: list = list(outcome.reasons)

    followup_due_at = bundle.followup_due_at_from_deferral
    followup_due_source = bundle.followup_due_source_from_deferral
    if followup_due_at is not None and not followup_due_source:
        followup_due_source = DUE_SOURCE_UNKNOWN

    stale_rule = match_staleness_rule(bundle, state)
    if stale_rule is not None:
        logger.debug(f"Staleness rule '{stale_rule.name}' forced LOST (was {state})")
        state = STATE_LOST
        confidence = stale_rule.confidence
        if stale_rule.replace_reasons:
            reasons = list(stale_rule.reasons)
        else:
            reasons.extend(r for r in stale_rule.reasons if r not in reasons)
        followup_due_at = None
        followup_due_source = None

    needs_followup = False
    followup_suggestion = None

    if state == STATE_DEFERRED:
        if (
            followup_due_at is not None
            and followup_due_source == DUE_SOURCE_CUSTOMER_INTENT
            and _due_soon(bundle, followup_due_at)
        ):
            needs_followup = True
            followup_suggestion = SUGGESTION_FOLLOW_UP_NOW
        else:
            # A default-sourced date is a system guess, never a commitment
            followup_suggestion = SUGGESTION_FOLLOW_UP_LATER
    elif state == STATE_OFF_PLATFORM:
        followup_suggestion = SUGGESTION_VISIBILITY_LOST
        followup_due_at = None
        followup_due_source = None
    elif not is_terminal_state(state):
        last_at = bundle.last_non_final_message_at
        direction = bundle.last_non_final_direction
        if direction == "inbound" and last_at is not None:
            followup_suggestion = SUGGESTION_REPLY_RECOMMENDED
            if REASON_UNREPLIED not in reasons:
                reasons.append(REASON_UNREPLIED)
            reply_due_at = last_at + timedelta(hours=bundle.sla_hours)
            if bundle.now >= reply_due_at:
                needs_followup = True
                if REASON_SLA_BREACH not in reasons:
                    reasons.append(REASON_SLA_BREACH)
            if followup_due_at is None:
                followup_due_at = reply_due_at
                followup_due_source = DUE_SOURCE_DEFAULT
        elif direction == "outbound" and last_at is not None:
            followup_due_at = calendar.add_business_days(
                last_at, bundle.stale_outbound_business_days
            )
            followup_due_source = DUE_SOURCE_DEFAULT
            if bundle.now >= followup_due_at:
                needs_followup = True
                followup_suggestion = SUGGESTION_FOLLOW_UP_NOW
            else:
                followup_suggestion = SUGGESTION_FOLLOW_UP_LATER

    if bundle.inbound_count_non_final == 0:
        reasons = [r for r in reasons if reason_code(r) not in FOLLOWUP_REASONS]

    # Terminal states never carry follow-up data, whatever ran above
    if is_terminal_state(state):
        needs_followup = False
        followup_suggestion = None
        followup_due_at = None
        followup_due_source = None
        reasons = [r for r in reasons if reason_code(r) not in FOLLOWUP_REASONS]

    if followup_due_at is not None and not followup_due_source:
        followup_due_source = DUE_SOURCE_UNKNOWN

    logger.debug(f"Evaluated state {state} via rule '{rule_name}' (reasons: {reasons})")

    return StateEvaluationResult(
        state=state,
        confidence=confidence,
        reasons=reasons,
        needs_followup=needs_followup,
        followup_suggestion=followup_suggestion,
        followup_due_at=followup_due_at.astimezone(UTC) if followup_due_at else None,
        followup_due_source=followup_due_source,
        state_trigger_message_id=outcome.trigger_message_id if state == outcome.state else None,
    )
