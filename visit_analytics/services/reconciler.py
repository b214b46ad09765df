"""
Reconciler

Scheduled jobs that fold the hot tier into the durable store:

- hourly:  reconcile today
- daily:   reconcile yesterday, finalizing its row
- weekly:  purge hot-tier keys older than the retention window

Every job is idempotent and independent. A job that fails logs the job name
and date and returns; the next scheduled run repairs whatever was left
half-done. A job whose previous run is still in flight is skipped.

Races with live traffic are benign: the hot tier is the source of truth for
today and estimator merges are commutative and associative, so a fingerprint
missed by one run is picked up by the next.
"""

import logging
from datetime import date, timedelta
from typing import Awaitable, Callable, Optional, TypeVar

from visit_analytics.core.clock import CalendarClock
from visit_analytics.core.exceptions import ClockSkewWarning
from visit_analytics.db.models import DailyVisitStatistics
from visit_analytics.services.aggregate_store import AggregateStore
from visit_analytics.services.hot_counter_store import HotCounterStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

HOURLY_JOB = "hourly-sync"
DAILY_JOB = "daily-sync"
WEEKLY_CLEANUP_JOB = "weekly-cleanup"


class JobRegistry:
    """
    In-flight flags per job name.

    try_acquire() is a test-and-set with no await in between, so on a single
    event loop it behaves as a compare-and-swap: exactly one caller wins.
    """

    def __init__(self):
        self._in_flight: dict[str, bool] = {}

    def try_acquire(self, name: str) -> bool:
        if self._in_flight.get(name, False):
            return False
        self._in_flight[name] = True
        return True

    def release(self, name: str) -> None:
        self._in_flight[name] = False

    def is_running(self, name: str) -> bool:
        return self._in_flight.get(name, False)

    async def run_exclusive(
        self,
        name: str,
        job: Callable[[], Awaitable[T]]
    ) -> tuple[bool, Optional[T]]:
        """
        Run job unless another run of the same name is in flight.

        Returns:
            (ran, result); (False, None) when skipped
        """
        if not self.try_acquire(name):
            logger.info(f"Job '{name}' is still running, skipping this run")
            return False, None
        try:
            return True, await job()
        finally:
            self.release(name)


class Reconciler:
    """Hourly, daily and weekly maintenance of the two storage tiers."""

    def __init__(
        self,
        hot_store: HotCounterStore,
        aggregate_store: AggregateStore,
        clock: CalendarClock,
        retention_days: int = 7,
        max_future_skew_days: int = 1,
        registry: Optional[JobRegistry] = None
    ):
        self.hot_store = hot_store
        self.aggregate_store = aggregate_store
        self.clock = clock
        self.retention_days = retention_days
        self.max_future_skew_days = max_future_skew_days
        self.registry = registry or JobRegistry()

    async def reconcile_date(self, day: date) -> Optional[DailyVisitStatistics]:
        """
        Merge one day's hot-tier counters into its durable row.

        A day with no hot-tier data is left untouched, so no empty row is
        created for a day without traffic.

        Returns:
            The row as written, or None when there was nothing to merge

        Raises:
            StorageUnavailableError: If either tier cannot be reached
        """
        page_views = await self.hot_store.read_page_views(day)
        estimator = await self.hot_store.read_estimator(day)

        if page_views == 0 and estimator is None:
            logger.debug(f"No hot-tier data for {day}, nothing to reconcile")
            return None

        row = await self.aggregate_store.reconcile(day, page_views, estimator)
        logger.debug(
            f"Reconciled {day}: PV={row.page_views}, UV={row.unique_visitors} "
            f"(hot PV={page_views})"
        )
        return row

    async def run_hourly(self) -> bool:
        """Reconcile today. Returns True when the run completed."""
        return await self._run_sync_job(HOURLY_JOB, self.clock.today)

    async def run_daily(self) -> bool:
        """Finalize yesterday. Returns True when the run completed."""
        return await self._run_sync_job(DAILY_JOB, self.clock.yesterday)

    async def run_weekly_cleanup(self) -> int:
        """
        Delete hot-tier keys dated before today - retention_days.

        Keys whose date cannot be parsed are logged and skipped; keys dated
        too far in the future are reported as clock skew and kept.

        Returns:
            Number of keys deleted (0 when skipped or failed)
        """
        ran, deleted = await self.registry.run_exclusive(WEEKLY_CLEANUP_JOB, self._cleanup)
        return deleted if ran and deleted is not None else 0

    async def _run_sync_job(self, name: str, target_day: Callable[[], date]) -> bool:
        day = target_day()

        async def job() -> bool:
            logger.info(f"Job '{name}' starting for {day}")
            try:
                await self.reconcile_date(day)
            except Exception as e:
                logger.error(f"Job '{name}' failed for {day}: {e}", exc_info=True)
                return False
            logger.info(f"Job '{name}' finished for {day}")
            return True

        ran, ok = await self.registry.run_exclusive(name, job)
        return bool(ran and ok)

    async def _cleanup(self) -> int:
        today = self.clock.today()
        cutoff = today - timedelta(days=self.retention_days)
        horizon = today + timedelta(days=self.max_future_skew_days)
        logger.info(f"Job '{WEEKLY_CLEANUP_JOB}' starting: deleting hot-tier keys before {cutoff}")

        expired: list[str] = []
        try:
            async for key, _kind, suffix in self.hot_store.scan_dated_keys():
                try:
                    key_date = date.fromisoformat(suffix)
                except ValueError:
                    logger.warning(f"Skipping hot-tier key with unparseable date: {key}")
                    continue

                if key_date > horizon:
                    logger.warning(str(ClockSkewWarning(key, key_date, today)))
                    continue
                if key_date < cutoff:
                    expired.append(key)

            deleted = await self.hot_store.delete(*expired)
        except Exception as e:
            logger.error(f"Job '{WEEKLY_CLEANUP_JOB}' failed for {today}: {e}", exc_info=True)
            return 0

        logger.info(f"Job '{WEEKLY_CLEANUP_JOB}' finished: {deleted} keys deleted")
        return deleted
