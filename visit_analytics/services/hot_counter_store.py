"""
Hot Counter Store

Redis-backed, day-scoped write target for live traffic.

Key layout:
    {prefix}:pv:{YYYY-MM-DD}  -> integer page view counter (INCR)
    {prefix}:uv:{YYYY-MM-DD}  -> serialized Estimator bytes

Concurrency:
- Page views use INCR, which Redis applies atomically
- The estimator is a read-modify-write, guarded by an optimistic
  WATCH/MULTI/EXEC loop: if another writer touched the key between our read
  and our write, EXEC fails with WatchError and we retry on fresh data

Every write refreshes the TTL so active days survive through their
reconciliation window, while abandoned days expire on their own.
"""

import logging
from datetime import date
from typing import AsyncIterator, Optional, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from visit_analytics.core.clock import date_key
from visit_analytics.core.exceptions import CorruptEstimatorError, StorageUnavailableError
from visit_analytics.services.estimator import Estimator

logger = logging.getLogger(__name__)

PV_KIND = "pv"
UV_KIND = "uv"


class HotCounterStore:
    """
    Per-day PV counters and estimators in Redis.

    All Redis failures are re-raised as StorageUnavailableError; missing keys
    are never an error (a new day simply starts from zero).
    """

    def __init__(
        self,
        redis: Redis,
        key_prefix: str = "visit",
        ttl_seconds: int = 2 * 24 * 60 * 60,
        precision: int = 14,
        cas_max_retries: int = 16
    ):
        """
        Args:
            redis: Async Redis client (bytes responses, no decoding)
            key_prefix: Namespace for all keys
            ttl_seconds: TTL refreshed on every write
            precision: Estimator precision for new days
            cas_max_retries: Attempts for the WATCH loop before giving up
        """
        self.redis = redis
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_seconds
        self.precision = precision
        self.cas_max_retries = cas_max_retries

    def pv_key(self, day: date) -> str:
        return f"{self.key_prefix}:{PV_KIND}:{date_key(day)}"

    def uv_key(self, day: date) -> str:
        return f"{self.key_prefix}:{UV_KIND}:{date_key(day)}"

    async def increment_page_views(self, day: date) -> int:
        """
        Atomically increment the day's PV counter and refresh its TTL.

        Returns:
            The counter value after the increment
        """
        key = self.pv_key(day)
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, self.ttl_seconds)
                new_total, _ = await pipe.execute()
        except RedisError as e:
            raise StorageUnavailableError("redis", f"INCR {key} failed: {e}", e) from e
        return int(new_total)

    async def add_visitor(self, day: date, raw_hash: int) -> Estimator:
        """
        Fold a fingerprint into the day's estimator with a CAS loop.

        A corrupt stored value is logged and replaced by a fresh estimator
        rather than failing the write.

        Returns:
            The estimator as written

        Raises:
            StorageUnavailableError: On Redis errors or when every CAS
                attempt lost the race
        """
        key = self.uv_key(day)
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                for attempt in range(1, self.cas_max_retries + 1):
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        estimator = self._decode(key, raw) or Estimator(self.precision)
                        estimator.add(raw_hash)

                        pipe.multi()
                        pipe.set(key, estimator.serialize(), ex=self.ttl_seconds)
                        await pipe.execute()
                        return estimator
                    except WatchError:
                        # execute() already reset the pipeline; retry on fresh data
                        logger.debug(f"CAS conflict on {key} (attempt {attempt})")
        except RedisError as e:
            raise StorageUnavailableError("redis", f"update of {key} failed: {e}", e) from e

        raise StorageUnavailableError(
            "redis",
            f"update of {key} lost {self.cas_max_retries} consecutive CAS races"
        )

    async def read_page_views(self, day: date) -> int:
        """PV counter for a day (0 when the key does not exist)."""
        key = self.pv_key(day)
        try:
            value = await self.redis.get(key)
        except RedisError as e:
            raise StorageUnavailableError("redis", f"GET {key} failed: {e}", e) from e
        return int(value) if value is not None else 0

    async def read_estimator(self, day: date) -> Optional[Estimator]:
        """
        The day's estimator, or None when missing or unreadable.

        Corrupt values are logged and reported as missing so readers fall
        back to what the durable store holds.
        """
        key = self.uv_key(day)
        try:
            raw = await self.redis.get(key)
        except RedisError as e:
            raise StorageUnavailableError("redis", f"GET {key} failed: {e}", e) from e
        return self._decode(key, raw)

    async def expire(self, day: date, ttl_seconds: Optional[int] = None) -> None:
        """Refresh the TTL on both sub-keys of a day."""
        ttl = ttl_seconds or self.ttl_seconds
        try:
            async with self.redis.pipeline(transaction=False) as pipe:
                pipe.expire(self.pv_key(day), ttl)
                pipe.expire(self.uv_key(day), ttl)
                await pipe.execute()
        except RedisError as e:
            raise StorageUnavailableError("redis", f"EXPIRE for {day} failed: {e}", e) from e

    async def scan_dated_keys(self) -> AsyncIterator[Tuple[str, str, str]]:
        """
        Iterate over all PV and UV keys in the namespace.

        Uses SCAN (not KEYS) so large keyspaces do not block Redis.

        Yields:
            (key, kind, date_suffix) where kind is 'pv' or 'uv' and
            date_suffix is the unparsed text after '{prefix}:{kind}:'
        """
        for kind in (PV_KIND, UV_KIND):
            prefix = f"{self.key_prefix}:{kind}:"
            try:
                async for raw_key in self.redis.scan_iter(match=f"{prefix}*", count=500):
                    key = raw_key.decode("utf-8") if isinstance(raw_key, bytes) else raw_key
                    yield key, kind, key[len(prefix):]
            except RedisError as e:
                raise StorageUnavailableError("redis", f"SCAN {prefix}* failed: {e}", e) from e

    async def ping(self) -> bool:
        """True when Redis answers PING."""
        try:
            return bool(await self.redis.ping())
        except RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(await self.redis.delete(*keys))
        except RedisError as e:
            raise StorageUnavailableError("redis", f"DEL failed: {e}", e) from e

    def _decode(self, key: str, raw: Optional[bytes]) -> Optional[Estimator]:
        if raw is None:
            return None
        try:
            return Estimator.deserialize(raw, precision=self.precision)
        except CorruptEstimatorError as e:
            logger.warning(f"Discarding unreadable estimator at {key}: {e}")
            return None
