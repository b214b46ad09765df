"""
Resource Manager

This module manages the process-wide Redis connection pool, the analytics
engine built on it and the reconciliation scheduler.

Design:
- Initialized once on application startup, shared across requests
- Redis uses short socket/connect timeouts: a slow cache must degrade the
  write path to a logged warning, not stall requests
- The scheduler only starts when SCHEDULER_ENABLED is set
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from redis.asyncio import Redis

from visit_analytics.core.scheduler import build_scheduler
from visit_analytics.core.setting import settings
from visit_analytics.db.session import async_session_maker, create_tables, db_adapter, engine
from visit_analytics.services.engine import VisitAnalyticsEngine

logger = logging.getLogger(__name__)

# Global instances (initialized on startup)
_redis: Optional[Redis] = None
_engine: Optional[VisitAnalyticsEngine] = None
_scheduler: Optional[AsyncIOScheduler] = None


def get_engine() -> VisitAnalyticsEngine:
    """
    FastAPI dependency returning the analytics engine.

    Raises:
        RuntimeError: If called before initialize_resources()
    """
    if _engine is None:
        raise RuntimeError("Visit analytics engine is not initialized")
    return _engine


async def initialize_resources() -> None:
    """Connect Redis, build the engine and start the scheduler."""
    global _redis, _engine, _scheduler

    if _engine is not None:
        logger.warning("Visit analytics engine already initialized")
        return

    if db_adapter.get_dialect_name() == "sqlite":
        # Local/dev convenience; PostgreSQL schemas are managed by Alembic
        await create_tables(engine)

    _redis = Redis.from_url(
        settings.REDIS_URL,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        decode_responses=False,
    )
    _engine = VisitAnalyticsEngine.build(_redis, async_session_maker, db_adapter, settings)
    logger.info(
        f"Visit analytics engine initialized: timezone={settings.TIMEZONE}, "
        f"precision={settings.HLL_PRECISION}, prefix={settings.REDIS_KEY_PREFIX}"
    )

    if settings.SCHEDULER_ENABLED:
        _scheduler = build_scheduler(_engine.reconciler, settings)
        _scheduler.start()
        logger.info("Reconciliation scheduler started")


async def shutdown_resources() -> None:
    """Stop the scheduler and close the Redis connection pool."""
    global _redis, _engine, _scheduler

    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        logger.info("Reconciliation scheduler stopped")
        _scheduler = None

    if _redis is not None:
        try:
            await _redis.aclose()
        except Exception as e:
            logger.warning(f"Failed to close Redis connection pool: {e}")
        _redis = None

    _engine = None
