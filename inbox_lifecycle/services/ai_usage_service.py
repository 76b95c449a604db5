"""
Classifier budget counters (daily and per-conversation per day).

Increments are single UPDATE ... SET calls = calls + 1 statements so concurrent
workers never lose a count; the first call of a day inserts the row.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inbox_lifecycle.db.models import AiUsageConversationDaily, AiUsageDaily

logger = logging.getLogger(__name__)


def usage_day(now: datetime | None = None) -> str:
    """UTC calendar day (YYYY-MM-DD) that budgets are counted against."""
    return (now or datetime.now(UTC)).astimezone(UTC).date().isoformat()


class AiUsageService:
    def __init__(self, db: Session):
        self.db = db

    def get_counts(self, conversation_id: str, day: str | None = None) -> tuple[int, int]:
        """
        Current (daily_calls, conversation_calls) for a day.

        Missing rows count as zero.
        """
        day = day or usage_day()
        daily = self.db.execute(
            select(AiUsageDaily.calls).where(AiUsageDaily.date == day)
        ).scalar_one_or_none()
        conversation = self.db.execute(
            select(AiUsageConversationDaily.calls).where(
                AiUsageConversationDaily.conversation_id == conversation_id,
                AiUsageConversationDaily.date == day,
            )
        ).scalar_one_or_none()
        return int(daily or 0), int(conversation or 0)

    def _bump(self, model, where, values: dict) -> None:
        stmt = update(model).where(*where).values(calls=model.calls + 1)
        result = self.db.execute(stmt)
        if getattr(result, "rowcount", 0):
            return
        try:
            with self.db.begin_nested():
                self.db.add(model(calls=1, **values))
        except IntegrityError:
            # Another writer inserted the row first
            self.db.execute(stmt)

    def increment(self, conversation_id: str, day: str | None = None) -> None:
        """Atomically add one call to both the daily and the conversation counter."""
        day = day or usage_day()
        self._bump(AiUsageDaily, (AiUsageDaily.date == day,), {"date": day})
        self._bump(
            AiUsageConversationDaily,
            (
                AiUsageConversationDaily.conversation_id == conversation_id,
                AiUsageConversationDaily.date == day,
            ),
            {"conversation_id": conversation_id, "date": day},
        )
        self.db.commit()
        logger.debug(f"AI usage incremented for conversation {conversation_id} on {day}")

    def incrementer(self, conversation_id: str, day: str | None = None):
        """Zero-argument callable for run_ai_attempt's increment_usage."""
        return lambda: self.increment(conversation_id, day)
