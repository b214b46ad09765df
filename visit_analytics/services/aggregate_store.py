"""
Durable Aggregate Store

Relational persistence for one DailyVisitStatistics row per calendar day.

Design Decisions:
- Rows are created with an idempotent insert-or-ignore keyed by date, so
  concurrent first writers for a day never collide
- Page view increments are a single UPDATE (page_views = page_views + n),
  no read-modify-write
- Estimator snapshots are merged under a row lock (SELECT ... FOR UPDATE
  where the dialect supports it) and unique_visitors is recomputed from the
  merged snapshot in the same write
- Each public operation is one transaction in its own session
"""

import logging
from datetime import date
from typing import Callable, Optional

from sqlalchemy import select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from visit_analytics.core.exceptions import CorruptEstimatorError, StorageUnavailableError
from visit_analytics.core.validators import validate_date_range
from visit_analytics.db.interface import DatabaseAdapter
from visit_analytics.db.models import DailyVisitStatistics, utcnow
from visit_analytics.services.estimator import Estimator

logger = logging.getLogger(__name__)


class AggregateStore:
    """Insert-or-update access to the daily_visit_statistics table."""

    def __init__(
        self,
        session_maker: Callable[[], AsyncSession],
        adapter: DatabaseAdapter,
        precision: int = 14
    ):
        """
        Args:
            session_maker: Factory producing async sessions
            adapter: Dialect adapter (builds the insert-or-ignore statement)
            precision: Estimator precision used for new snapshots
        """
        self.session_maker = session_maker
        self.adapter = adapter
        self.precision = precision

    async def get_by_date(self, day: date) -> Optional[DailyVisitStatistics]:
        """The stored row for a day, or None when the day has none."""
        statement = select(DailyVisitStatistics).where(DailyVisitStatistics.statistics_date == day)
        try:
            async with self.session_maker() as session:
                result = await session.execute(statement)
                return result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            raise StorageUnavailableError("database", f"read of {day} failed: {e}", e) from e

    async def get_range(self, start: date, end: date) -> list[DailyVisitStatistics]:
        """
        Rows with start <= statistics_date <= end, most recent first.

        Raises:
            InvalidRangeError: If start > end
            StorageUnavailableError: If the database cannot be read
        """
        validate_date_range(start, end)
        statement = (
            select(DailyVisitStatistics)
            .where(DailyVisitStatistics.statistics_date >= start)
            .where(DailyVisitStatistics.statistics_date <= end)
            .order_by(DailyVisitStatistics.statistics_date.desc())
        )
        try:
            async with self.session_maker() as session:
                result = await session.execute(statement)
                return list(result.scalars().all())
        except (SQLAlchemyError, OSError) as e:
            raise StorageUnavailableError(
                "database", f"range read {start}..{end} failed: {e}", e
            ) from e

    async def ensure_row(self, day: date) -> None:
        """Create an empty row for the day unless one exists."""
        await self._run(day, "ensure row", self._ensure_row)

    async def increment_page_views(self, day: date, delta: int = 1) -> None:
        """Add delta to the day's page_views, creating the row if needed."""
        async def work(session: AsyncSession, day: date) -> None:
            await self._ensure_row(session, day)
            await self._increment(session, day, delta)

        await self._run(day, "increment page views", work)

    async def merge_estimator(self, day: date, estimator: Estimator) -> int:
        """
        Union an estimator into the day's snapshot.

        Returns:
            The new unique_visitors value
        """
        async def work(session: AsyncSession, day: date) -> int:
            await self._ensure_row(session, day)
            row = await self._lock_row(session, day)
            return self._apply_estimator(row, estimator)

        return await self._run(day, "merge estimator", work)

    async def mirror_visit(self, day: date, estimator: Estimator, pv_delta: int = 1) -> None:
        """
        Write-path mirror: page_views += pv_delta and merge the estimator,
        in one transaction.
        """
        async def work(session: AsyncSession, day: date) -> None:
            await self._ensure_row(session, day)
            await self._increment(session, day, pv_delta)
            row = await self._lock_row(session, day)
            self._apply_estimator(row, estimator)

        await self._run(day, "mirror visit", work)

    async def reconcile(
        self,
        day: date,
        page_views: int,
        estimator: Optional[Estimator]
    ) -> DailyVisitStatistics:
        """
        Fold hot-tier state into the day's row.

        page_views becomes max(stored, page_views): an absolute set from the
        hot tier that is idempotent and never lowers the stored total (the
        write-path mirror may be ahead after a cache restart). The estimator
        is merged, and unique_visitors recomputed from the merged snapshot.

        Returns:
            The row as written
        """
        async def work(session: AsyncSession, day: date) -> DailyVisitStatistics:
            await self._ensure_row(session, day)
            row = await self._lock_row(session, day)
            if page_views > row.page_views:
                row.page_views = page_views
            if estimator is not None:
                self._apply_estimator(row, estimator)
            row.updated_at = utcnow()
            return row

        return await self._run(day, "reconcile", work)

    async def ping(self) -> bool:
        """True when the database answers SELECT 1."""
        try:
            async with self.session_maker() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    def stored_estimator(self, row: DailyVisitStatistics) -> Optional[Estimator]:
        """
        Decode a row's snapshot; unreadable snapshots are logged and
        reported as None so callers can start over from an empty estimator.
        """
        if not row.estimator_snapshot:
            return None
        try:
            return Estimator.deserialize(row.estimator_snapshot, precision=self.precision)
        except CorruptEstimatorError as e:
            logger.warning(f"Stored estimator for {row.statistics_date} is unreadable, resetting: {e}")
            return None

    async def _run(self, day: date, action: str, work):
        try:
            async with self.session_maker() as session:
                try:
                    result = await work(session, day)
                    await session.commit()
                    return result
                except Exception:
                    await session.rollback()
                    raise
        except (SQLAlchemyError, OSError) as e:
            raise StorageUnavailableError("database", f"{action} for {day} failed: {e}", e) from e

    async def _ensure_row(self, session: AsyncSession, day: date) -> None:
        now = utcnow()
        statement = self.adapter.insert_or_ignore(
            DailyVisitStatistics.__table__,
            {
                "statistics_date": day,
                "page_views": 0,
                "unique_visitors": 0,
                "estimator_snapshot": None,
                "created_at": now,
                "updated_at": now,
            },
            conflict_columns=["statistics_date"],
        )
        await session.execute(statement)

    async def _increment(self, session: AsyncSession, day: date, delta: int) -> None:
        statement = (
            update(DailyVisitStatistics)
            .where(DailyVisitStatistics.statistics_date == day)
            .values(page_views=DailyVisitStatistics.page_views + delta, updated_at=utcnow())
        )
        await session.execute(statement)

    async def _lock_row(self, session: AsyncSession, day: date) -> DailyVisitStatistics:
        statement = (
            select(DailyVisitStatistics)
            .where(DailyVisitStatistics.statistics_date == day)
            .execution_options(populate_existing=True)
        )
        if self.adapter.supports_row_locks():
            statement = statement.with_for_update()
        result = await session.execute(statement)
        return result.scalar_one()

    def _apply_estimator(self, row: DailyVisitStatistics, estimator: Estimator) -> int:
        stored = self.stored_estimator(row)
        merged = stored.merge(estimator) if stored is not None else estimator.copy()
        # Snapshot and count are always written together
        row.estimator_snapshot = merged.serialize()
        row.unique_visitors = merged.cardinality()
        row.updated_at = utcnow()
        return row.unique_visitors
