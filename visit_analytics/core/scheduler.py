"""
Reconciliation Scheduler

APScheduler wiring for the reconciler's jobs. All triggers run in the
configured timezone so "after midnight" means local midnight.

- hourly-sync:     minute 0 of every hour
- daily-sync:      DAILY_SYNC_HOUR:00 every day
- weekly-cleanup:  WEEKLY_CLEANUP_DAY at WEEKLY_CLEANUP_HOUR:00

max_instances=1 and coalesce=True keep APScheduler itself from stacking runs
of the same job; the reconciler's JobRegistry enforces the same rule for
runs triggered outside the scheduler.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from visit_analytics.core.setting import Settings
from visit_analytics.services.reconciler import (
    DAILY_JOB,
    HOURLY_JOB,
    WEEKLY_CLEANUP_JOB,
    Reconciler,
)

MISFIRE_GRACE_SECONDS = 15 * 60


def build_scheduler(reconciler: Reconciler, config: Settings) -> AsyncIOScheduler:
    """Create (but do not start) the scheduler with the three jobs registered."""
    scheduler = AsyncIOScheduler(timezone=config.TIMEZONE)
    job_defaults = {
        "max_instances": 1,
        "coalesce": True,
        "misfire_grace_time": MISFIRE_GRACE_SECONDS,
        "replace_existing": True,
    }

    scheduler.add_job(
        reconciler.run_hourly,
        CronTrigger(minute=0, timezone=config.TIMEZONE),
        id=HOURLY_JOB,
        name="Reconcile today's hot-tier counters",
        **job_defaults,
    )
    scheduler.add_job(
        reconciler.run_daily,
        CronTrigger(hour=config.DAILY_SYNC_HOUR, minute=0, timezone=config.TIMEZONE),
        id=DAILY_JOB,
        name="Finalize yesterday's statistics",
        **job_defaults,
    )
    scheduler.add_job(
        reconciler.run_weekly_cleanup,
        CronTrigger(
            day_of_week=config.WEEKLY_CLEANUP_DAY,
            hour=config.WEEKLY_CLEANUP_HOUR,
            minute=0,
            timezone=config.TIMEZONE,
        ),
        id=WEEKLY_CLEANUP_JOB,
        name="Purge expired hot-tier keys",
        **job_defaults,
    )
    return scheduler
