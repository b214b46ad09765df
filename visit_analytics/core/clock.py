"""
Calendar Clock

All calendar-day boundaries (today, yesterday, ISO week start, month start)
come from a single CalendarClock pinned to the configured timezone. The
recorder, the reconciler and the query service share one instance so they
never disagree about which day it is.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CalendarClock:
    """Date arithmetic in one fixed timezone."""

    def __init__(self, tz_name: str = "UTC", now: Optional[Callable[[], datetime]] = None):
        self.tz = ZoneInfo(tz_name)
        self._now = now or _utcnow

    def now(self) -> datetime:
        current = self._now()
        if current.tzinfo is None:
            # Naive datetimes are taken as UTC
            current = current.replace(tzinfo=timezone.utc)
        return current.astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()

    def yesterday(self) -> date:
        return self.today() - timedelta(days=1)

    def days_ago(self, days: int) -> date:
        return self.today() - timedelta(days=days)

    def week_start(self, day: Optional[date] = None) -> date:
        """Monday of the ISO week containing `day` (default: today)."""
        day = day or self.today()
        return day - timedelta(days=day.isoweekday() - 1)

    def month_start(self, day: Optional[date] = None) -> date:
        day = day or self.today()
        return day.replace(day=1)


def date_key(day: date) -> str:
    """ISO-8601 calendar date used in hot-tier keys (e.g. 2024-01-01)."""
    return day.isoformat()
