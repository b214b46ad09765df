"""
Input Validators and Sanitizers

This module provides validation and sanitization functions for the values
the HTTP layer hands to the engine.

Security Considerations:
- Length limits keep oversized headers out of hashing and logs
- Date ranges are bounded so a single query cannot scan unbounded history
"""

from datetime import date
from typing import Optional

from visit_analytics.core.exceptions import InvalidRangeError

MAX_USER_AGENT_LENGTH = 500
MAX_IP_LENGTH = 45  # IPv6 max length
MAX_RECENT_DAYS = 365


def sanitize_user_agent(user_agent: Optional[str]) -> Optional[str]:
    """
    Normalize a User-Agent header.

    Args:
        user_agent: Raw header value (may be absent)

    Returns:
        Stripped, length-capped value, or None when absent/blank
    """
    if not user_agent or not isinstance(user_agent, str):
        return None

    user_agent = user_agent.strip()
    if not user_agent:
        return None

    return user_agent[:MAX_USER_AGENT_LENGTH]


def sanitize_client_ip(client_ip: Optional[str]) -> str:
    """Strip and cap the client IP; missing values become 'unknown'."""
    if not client_ip or not isinstance(client_ip, str):
        return "unknown"
    client_ip = client_ip.strip()
    return client_ip[:MAX_IP_LENGTH] or "unknown"


def validate_date_range(start: date, end: date) -> None:
    """
    Reject ranges whose start is after their end.

    Raises:
        InvalidRangeError: If start > end
    """
    if start > end:
        raise InvalidRangeError(start, end)


def validate_recent_days(days: int, max_days: int = MAX_RECENT_DAYS) -> int:
    """
    Validate the N in "last N days".

    Raises:
        InvalidRangeError: If days is outside 1..max_days
    """
    if days < 1 or days > max_days:
        raise InvalidRangeError(reason=f"days must be between 1 and {max_days}, got {days}")
    return days
