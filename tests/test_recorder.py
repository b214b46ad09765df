"""
Tests for the visit write path.
"""

import asyncio
from datetime import date, datetime, timezone

import fakeredis
import pytest
import pytest_asyncio

from conftest import PRECISION, TODAY
from visit_analytics.core.clock import CalendarClock
from visit_analytics.services.hot_counter_store import HotCounterStore
from visit_analytics.services.recorder import VisitRecorder


@pytest_asyncio.fixture
async def down_hot_store():
    server = fakeredis.FakeServer()
    server.connected = False
    client = fakeredis.FakeAsyncRedis(server=server)
    yield HotCounterStore(client, precision=PRECISION)
    await client.aclose()


class TestRecordPageView:
    @pytest.mark.asyncio
    async def test_two_visitors_five_views(self, recorder, hot_store, aggregate_store):
        """3 views from A and 2 from B: PV 5, UV 2 in both tiers."""
        for _ in range(3):
            await recorder.record_page_view("198.51.100.1", "Firefox")
        for _ in range(2):
            await recorder.record_page_view("198.51.100.2", "Chrome")

        assert await hot_store.read_page_views(TODAY) == 5
        assert (await hot_store.read_estimator(TODAY)).cardinality() == 2

        row = await aggregate_store.get_by_date(TODAY)
        assert row.page_views == 5
        assert row.unique_visitors == 2

    @pytest.mark.asyncio
    async def test_same_ip_different_agents_are_distinct(self, recorder, hot_store):
        await recorder.record_page_view("198.51.100.1", "Firefox")
        await recorder.record_page_view("198.51.100.1", "Chrome")

        assert (await hot_store.read_estimator(TODAY)).cardinality() == 2

    @pytest.mark.asyncio
    async def test_missing_user_agent_is_accepted(self, recorder, hot_store):
        await recorder.record_page_view("198.51.100.1")
        await recorder.record_page_view("198.51.100.1", "   ")

        assert await hot_store.read_page_views(TODAY) == 2
        assert (await hot_store.read_estimator(TODAY)).cardinality() == 1

    @pytest.mark.asyncio
    async def test_concurrent_views_are_all_counted(self, recorder, hot_store):
        await asyncio.gather(
            *(recorder.record_page_view(f"10.0.0.{i % 10}", "ua") for i in range(50))
        )

        assert await hot_store.read_page_views(TODAY) == 50

    @pytest.mark.asyncio
    async def test_cache_outage_still_reaches_durable_store(
        self, down_hot_store, aggregate_store, clock
    ):
        recorder = VisitRecorder(down_hot_store, aggregate_store, clock, precision=PRECISION)

        await recorder.record_page_view("198.51.100.1", "Firefox")
        await recorder.record_page_view("198.51.100.2", "Firefox")

        row = await aggregate_store.get_by_date(TODAY)
        assert row.page_views == 2
        assert row.unique_visitors == 2

    @pytest.mark.asyncio
    async def test_database_outage_still_counts_in_cache(
        self, hot_store, broken_aggregate_store, clock
    ):
        recorder = VisitRecorder(hot_store, broken_aggregate_store, clock, precision=PRECISION)

        await recorder.record_page_view("198.51.100.1", "Firefox")

        assert await hot_store.read_page_views(TODAY) == 1

    @pytest.mark.asyncio
    async def test_total_outage_never_raises(self, down_hot_store, broken_aggregate_store, clock):
        recorder = VisitRecorder(down_hot_store, broken_aggregate_store, clock, precision=PRECISION)

        assert await recorder.record_page_view("198.51.100.1", "Firefox") is None


class TestDayBoundary:
    @pytest.mark.asyncio
    async def test_local_midnight_splits_days(self, hot_store, aggregate_store):
        """Asia/Shanghai is UTC+8: 15:59:59 UTC is 23:59:59 local."""
        now = {"value": datetime(2024, 5, 15, 15, 59, 59, tzinfo=timezone.utc)}
        clock = CalendarClock("Asia/Shanghai", now=lambda: now["value"])
        recorder = VisitRecorder(hot_store, aggregate_store, clock, precision=PRECISION)

        await recorder.record_page_view("198.51.100.1", "Firefox")
        now["value"] = datetime(2024, 5, 15, 16, 0, 1, tzinfo=timezone.utc)
        await recorder.record_page_view("198.51.100.1", "Firefox")

        assert await hot_store.read_page_views(date(2024, 5, 15)) == 1
        assert await hot_store.read_page_views(date(2024, 5, 16)) == 1
        assert (await aggregate_store.get_by_date(date(2024, 5, 16))).page_views == 1
