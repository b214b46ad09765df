"""
Background Task Helpers

Page views are recorded after the response has been sent (FastAPI
BackgroundTasks), so the beacon request never waits on Redis or the database.
"""

import logging
from typing import Optional

from visit_analytics.services.engine import VisitAnalyticsEngine

logger = logging.getLogger(__name__)


async def record_page_view_background(
    engine: VisitAnalyticsEngine,
    client_ip: str,
    user_agent: Optional[str] = None
) -> None:
    """
    Background task to record a page view.

    Args:
        engine: The analytics engine
        client_ip: IP address of the visitor
        user_agent: User agent string (optional)
    """
    try:
        await engine.record_page_view(client_ip, user_agent)
    except Exception as e:
        # record_page_view never raises; this guards the task runner itself
        logger.error(f"Failed to record page view: {str(e)}", exc_info=True)
