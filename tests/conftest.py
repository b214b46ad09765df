"""
Shared fixtures.

- Redis is replaced by fakeredis (a fresh FakeServer per test)
- The durable store is a temporary SQLite file via aiosqlite
- Time is pinned with a mutable clock: Wednesday 2024-05-15 12:00 UTC
"""

from datetime import date, datetime, timezone
from typing import Optional

import fakeredis
import pytest
import pytest_asyncio

from visit_analytics.core.clock import CalendarClock
from visit_analytics.db.session import create_session_maker, create_tables
from visit_analytics.db.sqlite_adapter import SQLiteAdapter
from visit_analytics.services.aggregate_store import AggregateStore
from visit_analytics.services.engine import VisitAnalyticsEngine
from visit_analytics.services.estimator import Estimator
from visit_analytics.services.fingerprint import visitor_fingerprint
from visit_analytics.services.hot_counter_store import HotCounterStore
from visit_analytics.services.reconciler import Reconciler
from visit_analytics.services.recorder import VisitRecorder
from visit_analytics.services.stats_service import StatsService

PRECISION = 14
WEDNESDAY_NOON_UTC = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)
TODAY = date(2024, 5, 15)


class MutableNow:
    """Callable clock source tests can move around."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def estimator_of(*visitors: str, precision: int = PRECISION) -> Estimator:
    """Estimator holding one fingerprint per visitor IP."""
    estimator = Estimator(precision)
    for ip in visitors:
        estimator.add(visitor_fingerprint(ip, "pytest-agent"))
    return estimator


async def seed_day(
    store: AggregateStore,
    day: date,
    page_views: int,
    visitors: Optional[list[str]] = None
) -> None:
    """Write a finished durable row for a past day."""
    await store.reconcile(day, page_views, estimator_of(*(visitors or [])))


@pytest.fixture
def now() -> MutableNow:
    return MutableNow(WEDNESDAY_NOON_UTC)


@pytest.fixture
def clock(now: MutableNow) -> CalendarClock:
    return CalendarClock("UTC", now=now)


@pytest.fixture
def fake_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest_asyncio.fixture
async def redis(fake_server):
    client = fakeredis.FakeAsyncRedis(server=fake_server)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    adapter = SQLiteAdapter()
    db_engine = adapter.create_engine(f"sqlite+aiosqlite:///{tmp_path / 'visits.db'}")
    await create_tables(db_engine)
    yield create_session_maker(db_engine)
    await db_engine.dispose()


@pytest_asyncio.fixture
async def broken_session_maker(tmp_path):
    """Sessions whose database file can never be opened."""
    adapter = SQLiteAdapter(timeout_seconds=0.1)
    db_engine = adapter.create_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'missing-dir' / 'visits.db'}"
    )
    yield create_session_maker(db_engine)
    await db_engine.dispose()


@pytest.fixture
def hot_store(redis) -> HotCounterStore:
    return HotCounterStore(redis, key_prefix="visit", precision=PRECISION, cas_max_retries=64)


@pytest.fixture
def aggregate_store(session_maker) -> AggregateStore:
    return AggregateStore(session_maker, SQLiteAdapter(), precision=PRECISION)


@pytest.fixture
def broken_aggregate_store(broken_session_maker) -> AggregateStore:
    return AggregateStore(broken_session_maker, SQLiteAdapter(), precision=PRECISION)


@pytest.fixture
def recorder(hot_store, aggregate_store, clock) -> VisitRecorder:
    return VisitRecorder(hot_store, aggregate_store, clock, precision=PRECISION)


@pytest.fixture
def reconciler(hot_store, aggregate_store, clock) -> Reconciler:
    return Reconciler(hot_store, aggregate_store, clock, retention_days=7, max_future_skew_days=1)


@pytest.fixture
def stats_service(hot_store, aggregate_store, clock) -> StatsService:
    return StatsService(hot_store, aggregate_store, clock)


@pytest.fixture
def analytics_engine(recorder, stats_service, reconciler) -> VisitAnalyticsEngine:
    return VisitAnalyticsEngine(recorder, stats_service, reconciler)
