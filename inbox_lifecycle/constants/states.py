"""
Conversation state constants - centralized to avoid circular imports.
"""

STATE_NEW = "NEW"
STATE_ENGAGED = "ENGAGED"
STATE_PRICE_GIVEN = "PRICE_GIVEN"
STATE_DEFERRED = "DEFERRED"
STATE_OFF_PLATFORM = "OFF_PLATFORM"

# Terminal with respect to follow-up
STATE_SPAM = "SPAM"
STATE_CONVERTED = "CONVERTED"
STATE_LOST = "LOST"

ALL_STATES = frozenset(
    {
        STATE_NEW,
        STATE_ENGAGED,
        STATE_PRICE_GIVEN,
        STATE_DEFERRED,
        STATE_OFF_PLATFORM,
        STATE_SPAM,
        STATE_CONVERTED,
        STATE_LOST,
    }
)

TERMINAL_STATES = frozenset({STATE_LOST, STATE_SPAM, STATE_CONVERTED})

# Confidence levels attached to a state or a structured reason
CONFIDENCE_HIGH = "HIGH"
CONFIDENCE_MEDIUM = "MEDIUM"
CONFIDENCE_LOW = "LOW"
