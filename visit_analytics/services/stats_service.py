"""
Statistics Service

Read path for daily visit statistics.

Design Decisions:
- Today is served live: hot-tier counters merged with the durable mirror,
  so a just-recorded view is visible immediately
- Any other day comes from the durable store; a day without a row is "not
  found", which is different from a day with zero activity
- Read failures are raised as typed errors, never swallowed, so dashboards
  can tell "no data" from "backend down"
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from visit_analytics.core.clock import CalendarClock
from visit_analytics.core.exceptions import StorageUnavailableError
from visit_analytics.core.validators import validate_date_range, validate_recent_days
from visit_analytics.db.models import DailyVisitStatistics
from visit_analytics.services.aggregate_store import AggregateStore
from visit_analytics.services.estimator import Estimator
from visit_analytics.services.hot_counter_store import HotCounterStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DailyStatistics:
    """PV/UV for one calendar day."""
    statistics_date: date
    page_views: int
    unique_visitors: int
    live: bool = False

    @classmethod
    def from_row(cls, row: DailyVisitStatistics) -> "DailyStatistics":
        return cls(
            statistics_date=row.statistics_date,
            page_views=row.page_views,
            unique_visitors=row.unique_visitors,
        )


@dataclass(frozen=True)
class SummaryStatistics:
    """Dashboard summary. UV totals over several days are sums of daily UVs."""
    today_pv: int = 0
    today_uv: int = 0
    yesterday_pv: int = 0
    yesterday_uv: int = 0
    week_pv: int = 0
    week_uv: int = 0
    month_pv: int = 0
    month_uv: int = 0
    recent_days: list[DailyStatistics] = field(default_factory=list)
    recent_month: list[DailyStatistics] = field(default_factory=list)


class StatsService:
    """
    Service for retrieving visit statistics.

    Aggregates data from the hot tier (today) and the durable store
    (everything else).
    """

    def __init__(
        self,
        hot_store: HotCounterStore,
        aggregate_store: AggregateStore,
        clock: CalendarClock
    ):
        self.hot_store = hot_store
        self.aggregate_store = aggregate_store
        self.clock = clock

    async def get_by_date(self, day: date) -> Optional[DailyStatistics]:
        """
        Statistics for one day.

        Returns:
            The live record for today (zero activity included), the stored
            row for a past day, or None for a future day or a past day with
            no row
        """
        today = self.clock.today()
        if day > today:
            return None
        if day == today:
            return await self.get_live_today()

        row = await self.aggregate_store.get_by_date(day)
        return DailyStatistics.from_row(row) if row is not None else None

    async def get_by_range(self, start: date, end: date) -> list[DailyStatistics]:
        """
        Stored rows between start and end inclusive, most recent first.

        Today is not special-cased: combine with get_by_date(today) for live
        numbers.

        Raises:
            InvalidRangeError: If start > end
        """
        validate_date_range(start, end)
        rows = await self.aggregate_store.get_range(start, end)
        return [DailyStatistics.from_row(row) for row in rows]

    async def get_recent(self, days: int) -> list[DailyStatistics]:
        """
        The last `days` days ending today, most recent first, with today
        always reflecting live data.

        Raises:
            InvalidRangeError: If days is out of bounds
        """
        validate_recent_days(days)
        today = self.clock.today()
        history: list[DailyStatistics] = []
        if days > 1:
            start = today - timedelta(days=days - 1)
            history = await self.get_by_range(start, today - timedelta(days=1))

        result = [await self.get_live_today()] + history
        return sorted(result, key=lambda stats: stats.statistics_date, reverse=True)

    async def get_summary(self) -> SummaryStatistics:
        """
        Today, yesterday, week-to-date (ISO week, Monday start),
        month-to-date, last 7 and last 30 days.
        """
        today = self.clock.today()
        yesterday = today - timedelta(days=1)
        week_start = self.clock.week_start(today)
        month_start = self.clock.month_start(today)

        live_today = await self.get_live_today()

        # One durable scan covers the week, the month and the last 30 days
        month_window_start = today - timedelta(days=29)
        earliest = min(week_start, month_start, month_window_start)
        history: list[DailyStatistics] = []
        if earliest <= yesterday:
            history = await self.get_by_range(earliest, yesterday)
        recent_month = [live_today] + [
            stats for stats in history if stats.statistics_date >= month_window_start
        ]

        def totals(start: date) -> tuple[int, int]:
            days = [stats for stats in history if stats.statistics_date >= start]
            return (
                sum(stats.page_views for stats in days) + live_today.page_views,
                sum(stats.unique_visitors for stats in days) + live_today.unique_visitors,
            )

        yesterday_stats = next(
            (stats for stats in history if stats.statistics_date == yesterday), None
        )
        week_pv, week_uv = totals(week_start)
        month_pv, month_uv = totals(month_start)

        return SummaryStatistics(
            today_pv=live_today.page_views,
            today_uv=live_today.unique_visitors,
            yesterday_pv=yesterday_stats.page_views if yesterday_stats else 0,
            yesterday_uv=yesterday_stats.unique_visitors if yesterday_stats else 0,
            week_pv=week_pv,
            week_uv=week_uv,
            month_pv=month_pv,
            month_uv=month_uv,
            recent_days=[
                stats for stats in recent_month
                if stats.statistics_date >= today - timedelta(days=6)
            ],
            recent_month=recent_month,
        )

    async def get_live_today(self) -> DailyStatistics:
        """
        Today's statistics from the hot tier merged with the durable mirror.

        page_views is the larger of the two counters and the estimators are
        unioned, which is exactly what the next reconciliation would store.
        If one tier is down the other is used alone.

        Raises:
            StorageUnavailableError: If both tiers are unavailable
        """
        today = self.clock.today()
        hot_pv = 0
        hot_estimator: Optional[Estimator] = None
        hot_error: Optional[StorageUnavailableError] = None
        try:
            hot_pv = await self.hot_store.read_page_views(today)
            hot_estimator = await self.hot_store.read_estimator(today)
        except StorageUnavailableError as e:
            logger.warning(f"Hot tier unavailable for live statistics of {today}: {e}")
            hot_error = e

        row: Optional[DailyVisitStatistics] = None
        try:
            row = await self.aggregate_store.get_by_date(today)
        except StorageUnavailableError as e:
            if hot_error is not None:
                raise
            logger.warning(f"Durable store unavailable for live statistics of {today}: {e}")

        page_views = hot_pv
        estimator = hot_estimator
        if row is not None:
            page_views = max(page_views, row.page_views)
            stored = self.aggregate_store.stored_estimator(row)
            if stored is not None:
                estimator = stored.merge(estimator) if estimator is not None else stored

        return DailyStatistics(
            statistics_date=today,
            page_views=page_views,
            unique_visitors=estimator.cardinality() if estimator is not None else 0,
            live=True,
        )
