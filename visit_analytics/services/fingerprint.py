"""
Visitor Fingerprint

One-way 64-bit identifier for a (client IP, user agent) pair. Only the
integer is ever folded into an estimator; the inputs are not stored.
"""

import hashlib
from typing import Optional


def visitor_identifier(client_ip: str, user_agent: Optional[str]) -> str:
    """Join IP and user agent with '|' (absent user agent becomes '')."""
    return f"{client_ip}|{user_agent or ''}"


def visitor_fingerprint(client_ip: str, user_agent: Optional[str]) -> int:
    """
    Hash a visitor to an unsigned 64-bit integer.

    First 8 bytes of the MD5 digest, big-endian. MD5 is used for its
    uniform output, not for security.
    """
    digest = hashlib.md5(visitor_identifier(client_ip, user_agent).encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")
