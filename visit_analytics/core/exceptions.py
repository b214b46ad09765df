"""
Custom Exceptions

This module defines custom exceptions for the visit analytics engine.

Propagation:
- Write path (recording visits) catches and logs everything
- Read path raises these typed errors so callers can tell "no data"
  from "backend down"
- Reconciliation jobs log them with the job name and date
"""

from datetime import date
from typing import Optional


class VisitAnalyticsException(Exception):
    """Base exception for the visit analytics engine."""
    pass


class CorruptEstimatorError(VisitAnalyticsException):
    """Raised when serialized estimator bytes cannot be decoded."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Corrupt estimator data: {reason}")


class StorageUnavailableError(VisitAnalyticsException):
    """Raised when the cache tier or the durable store cannot be reached."""

    def __init__(self, backend: str, message: str, original_error: Optional[Exception] = None):
        self.backend = backend
        self.original_error = original_error
        super().__init__(f"{backend} unavailable: {message}")


class InvalidRangeError(VisitAnalyticsException):
    """Raised when a caller supplies a nonsensical date range."""

    def __init__(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        reason: str = "start date is after end date"
    ):
        self.start = start
        self.end = end
        self.reason = reason
        super().__init__(f"Invalid date range ({start} .. {end}): {reason}")


class ClockSkewWarning(VisitAnalyticsException):
    """
    Reported when a hot-tier key carries a date too far in the future.

    Never raised out of a job: it is logged and the key is left alone.
    """

    def __init__(self, key: str, key_date: date, today: date):
        self.key = key
        self.key_date = key_date
        self.today = today
        super().__init__(
            f"Hot-tier key '{key}' is dated {key_date}, ahead of today ({today})"
        )
