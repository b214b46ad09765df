"""
FastAPI Application Entry Point

Wires the visit statistics API together:
- /api/statistics routes (record, query, manual sync)
- request logging, CORS and per-IP rate limits
- startup/shutdown of Redis, the analytics engine and the scheduler

Run with: uvicorn visit_analytics.main:app
"""

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from visit_analytics import __version__
from visit_analytics.api import endpoints
from visit_analytics.core.pool_manager import get_engine, initialize_resources, shutdown_resources
from visit_analytics.core.rate_limit import limiter
from visit_analytics.middleware.logging import add_logging_middleware
from visit_analytics.services.engine import VisitAnalyticsEngine

app = FastAPI(
    title="Visit Analytics Service",
    description="Daily page views and HyperLogLog unique visitor estimates",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

add_logging_middleware(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(endpoints.router, tags=["Visit Statistics"])


@app.get("/", tags=["Health"])
async def root():
    return {"message": "Visit Analytics Service", "version": __version__, "docs": "/docs"}


@app.get("/health", tags=["Health"])
async def health_check(engine: VisitAnalyticsEngine = Depends(get_engine)):
    """
    Reachability of both storage tiers.

    "degraded" still means the service works: recording falls back to
    whichever tier is up, and so do today's statistics.
    """
    tiers = await engine.check_health()
    healthy = all(tiers.values())
    return {"status": "healthy" if healthy else "degraded", **tiers}


@app.on_event("startup")
async def startup_event():
    await initialize_resources()


@app.on_event("shutdown")
async def shutdown_event():
    await shutdown_resources()
