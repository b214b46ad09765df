"""
Visit Recorder

The write path invoked once per page view.

Design Decisions:
- The hot tier (Redis) takes every event: an atomic PV increment and a
  fingerprint folded into the day's estimator
- The durable store gets a best-effort mirror of the same event, so a
  prolonged cache outage still accumulates a durable signal; the reconciler
  remains authoritative and merges hot-tier state on its schedule
- Visit tracking must never break the page it instruments: every failure is
  logged and swallowed here, none reaches the caller
"""

import logging
from typing import Optional

from visit_analytics.core.clock import CalendarClock
from visit_analytics.core.exceptions import StorageUnavailableError
from visit_analytics.core.validators import sanitize_client_ip, sanitize_user_agent
from visit_analytics.services.aggregate_store import AggregateStore
from visit_analytics.services.estimator import Estimator
from visit_analytics.services.fingerprint import visitor_fingerprint
from visit_analytics.services.hot_counter_store import HotCounterStore

logger = logging.getLogger(__name__)


class VisitRecorder:
    """Records page views into both storage tiers."""

    def __init__(
        self,
        hot_store: HotCounterStore,
        aggregate_store: AggregateStore,
        clock: CalendarClock,
        precision: int = 14
    ):
        self.hot_store = hot_store
        self.aggregate_store = aggregate_store
        self.clock = clock
        self.precision = precision

    async def record_page_view(self, client_ip: str, user_agent: Optional[str] = None) -> None:
        """
        Record one page view.

        Side effects: one PV increment per tier and at most one fingerprint
        add per tier. Never raises.

        Args:
            client_ip: Client IP address as seen by the HTTP layer
            user_agent: User-Agent header (optional)
        """
        try:
            today = self.clock.today()
            client_ip = sanitize_client_ip(client_ip)
            user_agent = sanitize_user_agent(user_agent)
            fingerprint = visitor_fingerprint(client_ip, user_agent)
        except Exception as e:
            logger.error(f"Failed to prepare page view record: {e}", exc_info=True)
            return

        try:
            await self.hot_store.increment_page_views(today)
        except StorageUnavailableError as e:
            logger.warning(f"Hot-tier page view increment failed for {today}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error incrementing page views for {today}: {e}", exc_info=True)

        estimator: Optional[Estimator] = None
        try:
            estimator = await self.hot_store.add_visitor(today, fingerprint)
        except StorageUnavailableError as e:
            logger.warning(f"Hot-tier visitor update failed for {today}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error updating visitors for {today}: {e}", exc_info=True)

        if estimator is None:
            # Cache is down: mirror at least this visitor into the durable row
            estimator = Estimator(self.precision)
            estimator.add(fingerprint)

        try:
            await self.aggregate_store.mirror_visit(today, estimator, pv_delta=1)
        except StorageUnavailableError as e:
            logger.warning(f"Durable mirror degraded for {today}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error mirroring page view for {today}: {e}", exc_info=True)

        logger.debug(f"Recorded page view: date={today}, ip={client_ip}, user_agent={user_agent}")
