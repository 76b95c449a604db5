"""
Reason codes, follow-up suggestions and due-date sources produced by the state machine.
"""

# ---- Terminal reasons ----
REASON_OPT_OUT = "OPT_OUT"
REASON_BLOCKED_BY_RECIPIENT = "BLOCKED_BY_RECIPIENT"
REASON_BOUNCED = "BOUNCED"
REASON_EXPLICIT_REJECTION = "EXPLICIT_REJECTION"
REASON_PRICE_REJECTION = "PRICE_REJECTION"
REASON_WAIT_TO_PROCEED = "WAIT_TO_PROCEED"
REASON_INDEFINITE_DEFERRAL = "INDEFINITE_DEFERRAL"
REASON_SPAM_PHRASE_MATCH = "SPAM_PHRASE_MATCH"
REASON_SPAM_CONTEXT_CONFIRMED = "SPAM_CONTEXT_CONFIRMED"
REASON_SPAM_CONTENT = "SPAM_CONTENT"
REASON_CONVERSION_PHRASE = "CONVERSION_PHRASE"
REASON_LOSS_PHRASE = "LOSS_PHRASE"

# ---- Staleness ----
REASON_INBOUND_STALE = "INBOUND_STALE"
REASON_LOST_INACTIVE_TIMEOUT = "LOST_INACTIVE_TIMEOUT"
REASON_PRICE_REJECTION_STALE = "PRICE_REJECTION_STALE"
REASON_OFF_PLATFORM_NO_CONTACT_INFO = "OFF_PLATFORM_NO_CONTACT_INFO"
REASON_OFF_PLATFORM_STALE = "OFF_PLATFORM_STALE"
REASON_PRICE_STALE = "PRICE_STALE"

# ---- Progress ----
REASON_AI_DEFERRED = "AI_DEFERRED"
REASON_DEFERRAL_PHRASE = "DEFERRAL_PHRASE"
REASON_DEFERRAL_SEASON_PARSED = "DEFERRAL_SEASON_PARSED"
REASON_PRICE_MENTION = "PRICE_MENTION"

# ---- Follow-up ----
REASON_UNREPLIED = "UNREPLIED"
REASON_SLA_BREACH = "SLA_BREACH"

FOLLOWUP_REASONS = frozenset({REASON_UNREPLIED, REASON_SLA_BREACH})

# Suggestions shown next to a conversation
SUGGESTION_REPLY_RECOMMENDED = "Reply recommended"
SUGGESTION_FOLLOW_UP_NOW = "Follow up now"
SUGGESTION_FOLLOW_UP_LATER = "Follow up later"
SUGGESTION_VISIBILITY_LOST = "Visibility lost (off-platform)"

# Where a follow-up due date came from
DUE_SOURCE_CUSTOMER_INTENT = "customer_intent"  # Customer committed to a time
DUE_SOURCE_DEFAULT = "default"  # System-computed guess
DUE_SOURCE_UNKNOWN = "unknown"
