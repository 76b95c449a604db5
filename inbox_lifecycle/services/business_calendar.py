"""
Business calendar - loads working days and holidays and does business-day arithmetic.
"""

import logging
from datetime import date, datetime, timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

BUSINESS_CALENDAR_PATH = Path(__file__).parent.parent / "config" / "business_calendar.yml"

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def _get_default_calendar() -> dict[str, Any]:
    """Monday-Friday, no holidays."""
    return {"working_days": list(WEEKDAY_NAMES[:5]), "holidays": []}


@lru_cache(maxsize=1)
def load_business_calendar() -> dict[str, Any]:
    """
    Load the business calendar from YAML, falling back to defaults.
    Cached for performance.
    """
    try:
        if BUSINESS_CALENDAR_PATH.exists():
            with open(BUSINESS_CALENDAR_PATH, encoding="utf-8") as f:
                rules = yaml.safe_load(f) or {}
                logger.info(f"Loaded business calendar from {BUSINESS_CALENDAR_PATH}")
                return rules
        logger.warning(
            f"Business calendar not found at {BUSINESS_CALENDAR_PATH}, using defaults"
        )
    except Exception as e:
        logger.error(f"Failed to load business calendar: {e}, using defaults")
    return _get_default_calendar()


class BusinessCalendar:
    """Decides which UTC dates are business days."""

    def __init__(self, working_days=None, holidays=None):
        names = working_days if working_days is not None else WEEKDAY_NAMES[:5]
        self.working_weekdays = frozenset(
            WEEKDAY_NAMES.index(name.strip().lower())
            for name in names
            if isinstance(name, str) and name.strip().lower() in WEEKDAY_NAMES
        )
        self.holidays: frozenset[date] = frozenset(_parse_holidays(holidays or []))

    @classmethod
    def from_config(cls) -> "BusinessCalendar":
        rules = load_business_calendar()
        return cls(
            working_days=rules.get("working_days"),
            holidays=rules.get("holidays"),
        )

    def is_business_day(self, day: date) -> bool:
        return day.weekday() in self.working_weekdays and day not in self.holidays

    def add_business_days(self, base: datetime, business_days: int) -> datetime:
        """
        Advance base by N business days, keeping its time of day.

        Each step moves one calendar day; only business days count toward N.
        """
        if business_days <= 0 or not self.working_weekdays:
            return base
        result = base
        added = 0
        while added < business_days:
            result = result + timedelta(days=1)
            if self.is_business_day(result.date()):
                added += 1
        return result


def _parse_holidays(values) -> list[date]:
    parsed = []
    for value in values:
        if isinstance(value, date):
            parsed.append(value)
            continue
        try:
            parsed.append(date.fromisoformat(str(value)))
        except ValueError:
            logger.warning(f"Ignoring invalid holiday in business calendar: {value!r}")
    return parsed


@lru_cache(maxsize=1)
def get_business_calendar() -> BusinessCalendar:
    """Calendar built from the configured YAML file."""
    return BusinessCalendar.from_config()
