"""
Schemas for message timelines and the follow-up episodes derived from them.

Feature and rule-hit blobs are parsed once here, at the boundary, so the deriver
only ever sees typed values.
"""

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from inbox_lifecycle.utils.datetime_utils import parse_iso_datetime
from inbox_lifecycle.utils.json_utils import parse_json_object, parse_json_string_list

Timestamp = Annotated[datetime | None, BeforeValidator(parse_iso_datetime)]

_BOOL_FEATURES = (
    "ack_only",
    "has_explicit_rejection_phrase",
    "has_price_rejection_phrase",
    "contains_loss_phrase",
    "has_indefinite_deferral_phrase",
    "has_phone_number",
    "has_email",
)


class MessageFeatures(BaseModel):
    """Narrow typed view of the features blob; unknown keys are ignored."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    ack_only: bool | None = None
    has_explicit_rejection_phrase: bool | None = None
    has_price_rejection_phrase: bool | None = None
    contains_loss_phrase: bool | None = None
    has_indefinite_deferral_phrase: bool | None = None
    has_phone_number: bool | None = None
    has_email: bool | None = None
    explicit_lost: dict[str, Any] | None = None
    deferral_date_hint: str | None = None

    @classmethod
    def from_blob(cls, value: Any) -> "MessageFeatures":
        """
        Build features from a JSON string or dict without ever raising.

        Flags only count when they are real JSON booleans ("true" strings are dropped).
        """
        if isinstance(value, MessageFeatures):
            return value
        raw = parse_json_object(value)
        data: dict[str, Any] = {}
        for key in _BOOL_FEATURES:
            if isinstance(raw.get(key), bool):
                data[key] = raw[key]
        if isinstance(raw.get("explicit_lost"), dict):
            data["explicit_lost"] = raw["explicit_lost"]
        if isinstance(raw.get("deferral_date_hint"), str):
            data["deferral_date_hint"] = raw["deferral_date_hint"]
        return cls(**data)


class TimelineMessage(BaseModel):
    """One stored message as read from the message store. Never mutated by the core."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    user_id: str | None = None
    conversation_id: str
    page_id: str | None = None
    asset_id: str | None = None
    created_at: Timestamp = None
    direction: str | None = None
    sender_type: str | None = None
    body: str | None = None
    message_type: str | None = None
    message_trigger: str | None = None
    features: MessageFeatures = Field(default_factory=MessageFeatures)
    rule_hits: frozenset[str] = frozenset()

    @field_validator("features", mode="before")
    @classmethod
    def _parse_features(cls, value: Any) -> MessageFeatures:
        return MessageFeatures.from_blob(value)

    @field_validator("rule_hits", mode="before")
    @classmethod
    def _parse_rule_hits(cls, value: Any) -> frozenset[str]:
        return frozenset(parse_json_string_list(value))


class FollowupEvent(BaseModel):
    """
    A follow-up episode: an outbound business message that broke an idle period.

    Identity key is followup_message_id. revived / immediate_loss are 0 or 1.
    """

    followup_message_id: str
    user_id: str | None = None
    conversation_id: str
    page_id: str | None = None
    asset_id: str | None = None
    followup_sent_at: datetime
    previous_activity_at: datetime | None = None
    idle_seconds: int | None = None
    revived: int = 0
    immediate_loss: int = 0
    next_inbound_message_id: str | None = None
    next_inbound_at: datetime | None = None
    next_inbound_is_loss: int | None = None
