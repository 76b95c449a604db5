"""add_followup_events_and_ai_usage

Revision ID: 4f1a2b3c5d6e
Revises:
Create Date: 2026-02-03 09:30:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4f1a2b3c5d6e"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "messages",
        sa.Column("id", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("conversation_id", sa.String(length=128), nullable=False),
        sa.Column("page_id", sa.String(length=128), nullable=True),
        sa.Column("asset_id", sa.String(length=128), nullable=True),
        sa.Column("created_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("direction", sa.String(length=16), nullable=True),
        sa.Column("sender_type", sa.String(length=16), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("message_type", sa.String(length=64), nullable=True),
        sa.Column("message_trigger", sa.String(length=128), nullable=True),
        sa.Column("features_json", sa.Text(), nullable=True),
        sa.Column("rule_hits_json", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_messages_user_id"), "messages", ["user_id"], unique=False)
    op.create_index(
        op.f("ix_messages_conversation_id"), "messages", ["conversation_id"], unique=False
    )

    op.create_table(
        "followup_events",
        sa.Column("followup_message_id", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=True),
        sa.Column("conversation_id", sa.String(length=128), nullable=False),
        sa.Column("page_id", sa.String(length=128), nullable=True),
        sa.Column("asset_id", sa.String(length=128), nullable=True),
        sa.Column("followup_sent_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("previous_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("idle_seconds", sa.Integer(), nullable=True),
        sa.Column("revived", sa.Integer(), server_default="0", nullable=False),
        sa.Column("immediate_loss", sa.Integer(), server_default="0", nullable=False),
        sa.Column("next_inbound_message_id", sa.String(length=128), nullable=True),
        sa.Column("next_inbound_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_inbound_is_loss", sa.Integer(), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("followup_message_id"),
    )
    op.create_index(
        "followup_events_user_sent_idx",
        "followup_events",
        ["user_id", "followup_sent_at"],
        unique=False,
    )
    op.create_index(
        "followup_events_conversation_sent_idx",
        "followup_events",
        ["conversation_id", "followup_sent_at"],
        unique=False,
    )
    op.create_index(
        "followup_events_page_sent_idx",
        "followup_events",
        ["page_id", "followup_sent_at"],
        unique=False,
    )

    op.create_table(
        "ai_usage_daily",
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("calls", sa.Integer(), server_default="0", nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("date"),
    )
    op.create_table(
        "ai_usage_conversation_daily",
        sa.Column("conversation_id", sa.String(length=128), nullable=False),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("calls", sa.Integer(), server_default="0", nullable=False),
        sa.PrimaryKeyConstraint("conversation_id", "date"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("ai_usage_conversation_daily")
    op.drop_table("ai_usage_daily")
    op.drop_index("followup_events_page_sent_idx", table_name="followup_events")
    op.drop_index("followup_events_conversation_sent_idx", table_name="followup_events")
    op.drop_index("followup_events_user_sent_idx", table_name="followup_events")
    op.drop_table("followup_events")
    op.drop_index(op.f("ix_messages_conversation_id"), table_name="messages")
    op.drop_index(op.f("ix_messages_user_id"), table_name="messages")
    op.drop_table("messages")
