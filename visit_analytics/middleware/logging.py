"""
Request Logging Middleware

One log line per HTTP request: method, path, status, latency, client IP.

- Health probes and visit beacons are high-volume and logged at DEBUG
- 5xx responses (storage unavailable) are logged at WARNING
- Every response carries X-Process-Time (seconds)
"""

import logging
import time

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from visit_analytics.api.endpoints import get_client_ip

logger = logging.getLogger("visit_analytics")

QUIET_PATHS = frozenset({"/", "/health", "/api/statistics/visit"})


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request/response pair without touching endpoint code."""

    async def dispatch(self, request: Request, call_next):
        client_ip = get_client_ip(request)
        started = time.perf_counter()

        response = await call_next(request)

        elapsed = time.perf_counter() - started
        if response.status_code >= 500:
            level = logging.WARNING
        elif request.url.path in QUIET_PATHS:
            level = logging.DEBUG
        else:
            level = logging.INFO

        # METHOD PATH STATUS LATENCY_MS CLIENT_IP
        logger.log(
            level,
            f"{request.method} {request.url.path} "
            f"{response.status_code} {elapsed * 1000:.2f}ms IP:{client_ip}"
        )

        response.headers["X-Process-Time"] = f"{elapsed:.6f}"
        return response


def add_logging_middleware(app: FastAPI) -> None:
    app.add_middleware(LoggingMiddleware)
