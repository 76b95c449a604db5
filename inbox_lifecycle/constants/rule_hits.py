"""
Rule-hit codes and feature flag names found on stored messages.
"""

RULE_SYSTEM_ASSIGNMENT = "SYSTEM_ASSIGNMENT"
RULE_LOSS_PHRASE = "LOSS_PHRASE"
RULE_EXPLICIT_REJECTION = "EXPLICIT_REJECTION"
RULE_PRICE_REJECTION = "PRICE_REJECTION"
RULE_INDEFINITE_DEFERRAL = "INDEFINITE_DEFERRAL"

# Rule hits that make an inbound reply loss-bearing
LOSS_RULE_HITS = frozenset(
    {
        RULE_LOSS_PHRASE,
        RULE_EXPLICIT_REJECTION,
        RULE_PRICE_REJECTION,
        RULE_INDEFINITE_DEFERRAL,
    }
)

DIRECTION_INBOUND = "inbound"
DIRECTION_OUTBOUND = "outbound"

SENDER_BUSINESS = "business"
SENDER_CUSTOMER = "customer"
SENDER_SYSTEM = "system"

# message_type values that mark administrative messages
ADMINISTRATIVE_MESSAGE_TYPES = frozenset({"system", "assignment_notice"})

# Substrings of message_trigger that mark administrative messages
ADMINISTRATIVE_TRIGGER_MARKERS = ("system", "assignment", "admin")
