"""
Visit Analytics Engine

Facade composing the recorder, the statistics service and the reconciler
behind the operations the HTTP layer (or any other caller) uses.
"""

from datetime import date
from typing import Optional

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import async_sessionmaker

from visit_analytics.core.clock import CalendarClock
from visit_analytics.core.setting import Settings
from visit_analytics.db.interface import DatabaseAdapter
from visit_analytics.services.aggregate_store import AggregateStore
from visit_analytics.services.hot_counter_store import HotCounterStore
from visit_analytics.services.reconciler import Reconciler
from visit_analytics.services.recorder import VisitRecorder
from visit_analytics.services.stats_service import (
    DailyStatistics,
    StatsService,
    SummaryStatistics,
)


class VisitAnalyticsEngine:
    """Entry point for recording and querying visit statistics."""

    def __init__(
        self,
        recorder: VisitRecorder,
        stats_service: StatsService,
        reconciler: Reconciler
    ):
        self.recorder = recorder
        self.stats_service = stats_service
        self.reconciler = reconciler

    @classmethod
    def build(
        cls,
        redis: Redis,
        session_maker: async_sessionmaker,
        adapter: DatabaseAdapter,
        config: Settings,
        clock: Optional[CalendarClock] = None
    ) -> "VisitAnalyticsEngine":
        """Wire every component from one Settings object and shared clients."""
        clock = clock or CalendarClock(config.TIMEZONE)
        hot_store = HotCounterStore(
            redis,
            key_prefix=config.REDIS_KEY_PREFIX,
            ttl_seconds=config.HOT_COUNTER_TTL_SECONDS,
            precision=config.HLL_PRECISION,
            cas_max_retries=config.CAS_MAX_RETRIES,
        )
        aggregate_store = AggregateStore(session_maker, adapter, precision=config.HLL_PRECISION)
        return cls(
            recorder=VisitRecorder(hot_store, aggregate_store, clock, precision=config.HLL_PRECISION),
            stats_service=StatsService(hot_store, aggregate_store, clock),
            reconciler=Reconciler(
                hot_store,
                aggregate_store,
                clock,
                retention_days=config.RETENTION_DAYS,
                max_future_skew_days=config.MAX_FUTURE_SKEW_DAYS,
            ),
        )

    async def record_page_view(self, client_ip: str, user_agent: Optional[str] = None) -> None:
        """Never raises."""
        await self.recorder.record_page_view(client_ip, user_agent)

    async def get_statistics_by_date(self, day: date) -> Optional[DailyStatistics]:
        return await self.stats_service.get_by_date(day)

    async def get_statistics_by_range(self, start: date, end: date) -> list[DailyStatistics]:
        return await self.stats_service.get_by_range(start, end)

    async def get_summary(self) -> SummaryStatistics:
        return await self.stats_service.get_summary()

    async def get_recent(self, days: int = 7) -> list[DailyStatistics]:
        return await self.stats_service.get_recent(days)

    async def check_health(self) -> dict[str, bool]:
        """Reachability of each storage tier, e.g. {"cache": True, "database": False}."""
        return {
            "cache": await self.stats_service.hot_store.ping(),
            "database": await self.stats_service.aggregate_store.ping(),
        }

    async def sync_date(self, day: date) -> Optional[DailyStatistics]:
        """
        Manually reconcile one date (operator tool).

        Raises:
            StorageUnavailableError: If either tier cannot be reached
        """
        row = await self.reconciler.reconcile_date(day)
        return DailyStatistics.from_row(row) if row is not None else None
