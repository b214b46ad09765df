"""
Database Models for the Visit Analytics Engine

This module defines the SQLModel schema for:
- DailyVisitStatistics: one row per calendar day with PV total, the
  serialized HyperLogLog snapshot and the UV estimate derived from it

Design Decisions:
- statistics_date is unique: every write path upserts by date
- unique_visitors is denormalized for fast reads; it is only ever written
  together with the snapshot it was computed from
- Rows are never deleted; only the hot-tier mirror in Redis expires
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import BigInteger, Date, DateTime, LargeBinary
from sqlmodel import Column, Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DailyVisitStatistics(SQLModel, table=True):
    """
    Durable per-day visit aggregate.

    Fields:
    - id: Auto-incrementing primary key
    - statistics_date: Calendar day in the configured timezone (unique)
    - page_views: Total page views, never decreases for a given date
    - estimator_snapshot: Serialized estimator registers (None until the
      first visitor is merged)
    - unique_visitors: Cardinality of estimator_snapshot at the last write
    - created_at / updated_at: Audit timestamps
    """
    __tablename__ = "daily_visit_statistics"

    id: Optional[int] = Field(default=None, primary_key=True)
    statistics_date: date = Field(
        sa_column=Column(Date, nullable=False, unique=True, index=True)
    )
    page_views: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    estimator_snapshot: Optional[bytes] = Field(
        default=None,
        sa_column=Column(LargeBinary, nullable=True)
    )
    unique_visitors: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
