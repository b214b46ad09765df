"""
API Request and Response Schemas

This module defines all Pydantic models for API responses.
Separated from endpoints to keep concerns separated and enable reuse.
"""

from datetime import date

from pydantic import BaseModel, Field

from visit_analytics.services.stats_service import DailyStatistics, SummaryStatistics


class StatisticsResponse(BaseModel):
    """PV/UV for one calendar day."""
    statistics_date: date = Field(..., description="Calendar day (YYYY-MM-DD)")
    page_views: int = Field(..., description="Page views recorded that day")
    unique_visitors: int = Field(..., description="Estimated distinct visitors that day")
    live: bool = Field(False, description="True when served from live (today's) counters")

    @classmethod
    def from_statistics(cls, stats: DailyStatistics) -> "StatisticsResponse":
        return cls(
            statistics_date=stats.statistics_date,
            page_views=stats.page_views,
            unique_visitors=stats.unique_visitors,
            live=stats.live,
        )


class SummaryResponse(BaseModel):
    """Response model for the summary endpoint."""
    today_pv: int
    today_uv: int
    yesterday_pv: int
    yesterday_uv: int
    week_pv: int
    week_uv: int
    month_pv: int
    month_uv: int
    recent_days: list[StatisticsResponse]
    recent_month: list[StatisticsResponse]

    @classmethod
    def from_summary(cls, summary: SummaryStatistics) -> "SummaryResponse":
        return cls(
            today_pv=summary.today_pv,
            today_uv=summary.today_uv,
            yesterday_pv=summary.yesterday_pv,
            yesterday_uv=summary.yesterday_uv,
            week_pv=summary.week_pv,
            week_uv=summary.week_uv,
            month_pv=summary.month_pv,
            month_uv=summary.month_uv,
            recent_days=[StatisticsResponse.from_statistics(s) for s in summary.recent_days],
            recent_month=[StatisticsResponse.from_statistics(s) for s in summary.recent_month],
        )


class VisitAcceptedResponse(BaseModel):
    """Response model for the visit beacon."""
    status: str = "accepted"


class SyncResponse(BaseModel):
    """Response model for manual reconciliation."""
    statistics_date: date
    synced: bool = Field(..., description="False when the hot tier had nothing for that date")
    statistics: StatisticsResponse | None = None
