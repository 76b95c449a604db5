from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from inbox_lifecycle.db.base import Base


class Message(Base):
    """Ingested message row. Written once by ingestion, read-only for the engine."""

    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    conversation_id: Mapped[str] = mapped_column(String(128), index=True)
    page_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    asset_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_time: Mapped[Optional[DateTime]] = mapped_column(DateTime(timezone=True), nullable=True)
    direction: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)  # inbound, outbound
    sender_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)  # business, customer, system
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    message_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    message_trigger: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    # Opaque JSON blobs from the signal extractor (parsed defensively on read)
    features_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rule_hits_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class FollowupEventRow(Base):
    """Persisted follow-up episode. One row per qualifying outbound message."""

    __tablename__ = "followup_events"
    __table_args__ = (
        Index("followup_events_user_sent_idx", "user_id", "followup_sent_at"),
        Index("followup_events_conversation_sent_idx", "conversation_id", "followup_sent_at"),
        Index("followup_events_page_sent_idx", "page_id", "followup_sent_at"),
    )

    followup_message_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    conversation_id: Mapped[str] = mapped_column(String(128))
    page_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    asset_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    followup_sent_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True))
    previous_activity_at: Mapped[Optional[DateTime]] = mapped_column(DateTime(timezone=True), nullable=True)
    idle_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Sticky outcome fields: never downgraded once set
    revived: Mapped[int] = mapped_column(Integer, default=0)
    immediate_loss: Mapped[int] = mapped_column(Integer, default=0)
    next_inbound_message_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    next_inbound_at: Mapped[Optional[DateTime]] = mapped_column(DateTime(timezone=True), nullable=True)
    next_inbound_is_loss: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    updated_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class AiUsageDaily(Base):
    """Classifier calls per UTC day (daily budget counter)."""

    __tablename__ = "ai_usage_daily"

    date: Mapped[str] = mapped_column(String(10), primary_key=True)  # YYYY-MM-DD
    calls: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class AiUsageConversationDaily(Base):
    """Classifier calls per conversation per UTC day."""

    __tablename__ = "ai_usage_conversation_daily"

    conversation_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    date: Mapped[str] = mapped_column(String(10), primary_key=True)
    calls: Mapped[int] = mapped_column(Integer, default=0)
