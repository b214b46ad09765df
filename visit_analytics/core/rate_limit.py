"""
Rate Limiting Configuration

This module provides rate limiting functionality for API endpoints.

Design Decisions:
- Uses slowapi for rate limiting (lightweight, FastAPI-compatible)
- Different limits for the write endpoint and the dashboard queries
- IP-based limiting
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Uses IP address for rate limiting
limiter = Limiter(key_func=get_remote_address)

# Format: "count/period" (e.g., "10/minute" means 10 requests per minute)
RATE_LIMITS = {
    "visit": "120/minute",  # Page view beacons: one per page load
    "query": "60/minute",  # Dashboard reads
    "sync": "6/minute",  # Manual reconciliation
}
