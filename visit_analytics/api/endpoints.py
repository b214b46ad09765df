"""
FastAPI Endpoints for Visit Statistics

This module defines all REST API endpoints with minimal logic.
Endpoints only handle:
- Request validation (query parameters)
- Rate limiting
- Error handling and HTTP responses
- Delegating to the analytics engine

Design Principles:
- Thin endpoints: all business logic lives in services
- Recording a visit never fails the request: it runs as a background task
- Read errors map to proper HTTP status codes (400 / 404 / 503)
"""

from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status

from visit_analytics.api.schemas import (
    StatisticsResponse,
    SummaryResponse,
    SyncResponse,
    VisitAcceptedResponse,
)
from visit_analytics.core.exceptions import InvalidRangeError, StorageUnavailableError
from visit_analytics.core.pool_manager import get_engine
from visit_analytics.core.rate_limit import RATE_LIMITS, limiter
from visit_analytics.core.validators import MAX_RECENT_DAYS
from visit_analytics.services.background_tasks import record_page_view_background
from visit_analytics.services.engine import VisitAnalyticsEngine

router = APIRouter(prefix="/api/statistics")


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Handles proxies and load balancers by checking X-Forwarded-For header.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For can contain multiple IPs, take the first one
        return forwarded_for.split(",")[0].strip()

    return request.client.host if request.client else "unknown"


def _storage_unavailable(e: StorageUnavailableError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=str(e)
    )


def _invalid_range(e: InvalidRangeError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=str(e)
    )


@router.post(
    "/visit",
    response_model=VisitAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Record a page view",
    description="Counts one page view for the calling client; processed after the response"
)
@limiter.limit(RATE_LIMITS["visit"])
async def record_visit(
    request: Request,
    background_tasks: BackgroundTasks,
    engine: VisitAnalyticsEngine = Depends(get_engine)
) -> VisitAcceptedResponse:
    background_tasks.add_task(
        record_page_view_background,
        engine,
        client_ip=get_client_ip(request),
        user_agent=request.headers.get("User-Agent")
    )
    return VisitAcceptedResponse()


@router.get(
    "/summary",
    response_model=SummaryResponse,
    summary="Get statistics summary",
    description="Today, yesterday, week-to-date, month-to-date, last 7 and last 30 days"
)
@limiter.limit(RATE_LIMITS["query"])
async def get_summary(
    request: Request,
    engine: VisitAnalyticsEngine = Depends(get_engine)
) -> SummaryResponse:
    try:
        summary = await engine.get_summary()
    except StorageUnavailableError as e:
        raise _storage_unavailable(e)
    return SummaryResponse.from_summary(summary)


@router.get(
    "/date",
    response_model=StatisticsResponse,
    summary="Get statistics for one day"
)
@limiter.limit(RATE_LIMITS["query"])
async def get_statistics_by_date(
    request: Request,
    day: date = Query(..., alias="date", description="Calendar day (YYYY-MM-DD)"),
    engine: VisitAnalyticsEngine = Depends(get_engine)
) -> StatisticsResponse:
    """
    Raises:
        HTTPException 404: If the day has no statistics (or is in the future)
        HTTPException 503: If storage is unavailable
    """
    try:
        stats = await engine.get_statistics_by_date(day)
    except StorageUnavailableError as e:
        raise _storage_unavailable(e)

    if stats is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No statistics for {day.isoformat()}"
        )
    return StatisticsResponse.from_statistics(stats)


@router.get(
    "/range",
    response_model=list[StatisticsResponse],
    summary="Get statistics for a date range",
    description="Stored daily statistics between start_date and end_date inclusive, most recent first"
)
@limiter.limit(RATE_LIMITS["query"])
async def get_statistics_by_range(
    request: Request,
    start_date: date = Query(..., description="First day (YYYY-MM-DD)"),
    end_date: date = Query(..., description="Last day (YYYY-MM-DD)"),
    engine: VisitAnalyticsEngine = Depends(get_engine)
) -> list[StatisticsResponse]:
    try:
        statistics = await engine.get_statistics_by_range(start_date, end_date)
    except InvalidRangeError as e:
        raise _invalid_range(e)
    except StorageUnavailableError as e:
        raise _storage_unavailable(e)
    return [StatisticsResponse.from_statistics(stats) for stats in statistics]


@router.get(
    "/recent",
    response_model=list[StatisticsResponse],
    summary="Get statistics for the last N days",
    description="Most recent first; today always reflects live counters"
)
@limiter.limit(RATE_LIMITS["query"])
async def get_recent_statistics(
    request: Request,
    days: int = Query(7, ge=1, le=MAX_RECENT_DAYS),
    engine: VisitAnalyticsEngine = Depends(get_engine)
) -> list[StatisticsResponse]:
    try:
        statistics = await engine.get_recent(days)
    except InvalidRangeError as e:
        raise _invalid_range(e)
    except StorageUnavailableError as e:
        raise _storage_unavailable(e)
    return [StatisticsResponse.from_statistics(stats) for stats in statistics]


@router.post(
    "/sync",
    response_model=SyncResponse,
    summary="Reconcile one day now",
    description="Merges the hot-tier counters of a day into the durable store immediately"
)
@limiter.limit(RATE_LIMITS["sync"])
async def sync_statistics(
    request: Request,
    day: date = Query(..., alias="date", description="Calendar day (YYYY-MM-DD)"),
    engine: VisitAnalyticsEngine = Depends(get_engine)
) -> SyncResponse:
    try:
        stats = await engine.sync_date(day)
    except StorageUnavailableError as e:
        raise _storage_unavailable(e)

    return SyncResponse(
        statistics_date=day,
        synced=stats is not None,
        statistics=StatisticsResponse.from_statistics(stats) if stats is not None else None
    )
