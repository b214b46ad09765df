"""
Tests for the Redis hot tier (run against fakeredis).
"""

import asyncio
from datetime import date

import fakeredis
import pytest
import pytest_asyncio

from conftest import TODAY
from visit_analytics.core.exceptions import StorageUnavailableError
from visit_analytics.services.fingerprint import visitor_fingerprint
from visit_analytics.services.hot_counter_store import HotCounterStore


@pytest_asyncio.fixture
async def down_store():
    """A store whose Redis server refuses every command."""
    server = fakeredis.FakeServer()
    server.connected = False
    client = fakeredis.FakeAsyncRedis(server=server)
    yield HotCounterStore(client)
    await client.aclose()


class TestKeys:
    def test_key_layout(self, hot_store):
        assert hot_store.pv_key(date(2024, 1, 1)) == "visit:pv:2024-01-01"
        assert hot_store.uv_key(date(2024, 1, 1)) == "visit:uv:2024-01-01"

    def test_custom_prefix(self, redis):
        store = HotCounterStore(redis, key_prefix="site-a")
        assert store.pv_key(TODAY) == "site-a:pv:2024-05-15"


class TestPageViews:
    @pytest.mark.asyncio
    async def test_missing_counter_reads_zero(self, hot_store):
        assert await hot_store.read_page_views(TODAY) == 0

    @pytest.mark.asyncio
    async def test_increment_returns_running_total_and_sets_ttl(self, hot_store, redis):
        assert await hot_store.increment_page_views(TODAY) == 1
        assert await hot_store.increment_page_views(TODAY) == 2
        assert await hot_store.read_page_views(TODAY) == 2

        ttl = await redis.ttl(hot_store.pv_key(TODAY))
        assert 0 < ttl <= hot_store.ttl_seconds

    @pytest.mark.asyncio
    async def test_concurrent_increments_are_not_lost(self, hot_store):
        await asyncio.gather(*(hot_store.increment_page_views(TODAY) for _ in range(100)))
        assert await hot_store.read_page_views(TODAY) == 100

    @pytest.mark.asyncio
    async def test_days_are_independent(self, hot_store):
        await hot_store.increment_page_views(TODAY)
        await hot_store.increment_page_views(date(2024, 5, 14))
        await hot_store.increment_page_views(date(2024, 5, 14))

        assert await hot_store.read_page_views(TODAY) == 1
        assert await hot_store.read_page_views(date(2024, 5, 14)) == 2


class TestVisitors:
    @pytest.mark.asyncio
    async def test_missing_estimator_reads_none(self, hot_store):
        assert await hot_store.read_estimator(TODAY) is None

    @pytest.mark.asyncio
    async def test_add_visitor_creates_estimator_with_ttl(self, hot_store, redis):
        estimator = await hot_store.add_visitor(TODAY, visitor_fingerprint("192.0.2.1", "ua"))

        assert estimator.cardinality() == 1
        stored = await hot_store.read_estimator(TODAY)
        assert stored == estimator
        ttl = await redis.ttl(hot_store.uv_key(TODAY))
        assert 0 < ttl <= hot_store.ttl_seconds

    @pytest.mark.asyncio
    async def test_repeat_visitor_does_not_grow(self, hot_store):
        fingerprint = visitor_fingerprint("192.0.2.1", "ua")
        for _ in range(5):
            await hot_store.add_visitor(TODAY, fingerprint)

        assert (await hot_store.read_estimator(TODAY)).cardinality() == 1

    @pytest.mark.asyncio
    async def test_concurrent_adds_lose_no_visitor(self, hot_store):
        fingerprints = [visitor_fingerprint(f"192.0.2.{i}", "ua") for i in range(20)]

        await asyncio.gather(*(hot_store.add_visitor(TODAY, fp) for fp in fingerprints))

        assert (await hot_store.read_estimator(TODAY)).cardinality() == 20

    @pytest.mark.asyncio
    async def test_corrupt_value_reads_as_missing(self, hot_store, redis):
        await redis.set(hot_store.uv_key(TODAY), b"garbage")
        assert await hot_store.read_estimator(TODAY) is None

    @pytest.mark.asyncio
    async def test_corrupt_value_is_replaced_on_write(self, hot_store, redis):
        await redis.set(hot_store.uv_key(TODAY), b"garbage")

        estimator = await hot_store.add_visitor(TODAY, visitor_fingerprint("192.0.2.1", "ua"))

        assert estimator.cardinality() == 1
        assert await hot_store.read_estimator(TODAY) == estimator

    @pytest.mark.asyncio
    async def test_raw_identity_is_never_stored(self, hot_store, redis):
        await hot_store.increment_page_views(TODAY)
        await hot_store.add_visitor(TODAY, visitor_fingerprint("203.0.113.99", "SecretAgent/1.0"))

        for key in await redis.keys("*"):
            assert b"203.0.113.99" not in key
            value = await redis.get(key)
            assert b"203.0.113.99" not in value
            assert b"SecretAgent" not in value


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_scan_lists_only_namespace_keys(self, hot_store, redis):
        await hot_store.increment_page_views(TODAY)
        await hot_store.add_visitor(TODAY, 42)
        await redis.set("other:pv:2024-05-15", 1)

        found = sorted([item async for item in hot_store.scan_dated_keys()])

        assert found == [
            ("visit:pv:2024-05-15", "pv", "2024-05-15"),
            ("visit:uv:2024-05-15", "uv", "2024-05-15"),
        ]

    @pytest.mark.asyncio
    async def test_delete(self, hot_store):
        await hot_store.increment_page_views(TODAY)

        assert await hot_store.delete(hot_store.pv_key(TODAY)) == 1
        assert await hot_store.delete() == 0
        assert await hot_store.read_page_views(TODAY) == 0

    @pytest.mark.asyncio
    async def test_expire_refreshes_both_keys(self, hot_store, redis):
        await hot_store.increment_page_views(TODAY)
        await hot_store.add_visitor(TODAY, 42)

        await hot_store.expire(TODAY, 60)

        assert 0 < await redis.ttl(hot_store.pv_key(TODAY)) <= 60
        assert 0 < await redis.ttl(hot_store.uv_key(TODAY)) <= 60


class TestUnavailable:
    @pytest.mark.asyncio
    async def test_every_operation_raises_storage_unavailable(self, down_store):
        with pytest.raises(StorageUnavailableError):
            await down_store.increment_page_views(TODAY)
        with pytest.raises(StorageUnavailableError):
            await down_store.add_visitor(TODAY, 42)
        with pytest.raises(StorageUnavailableError):
            await down_store.read_page_views(TODAY)
        with pytest.raises(StorageUnavailableError):
            await down_store.read_estimator(TODAY)
