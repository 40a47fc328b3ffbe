"""
YachtOps - Cross-Module Integration & Behavior Analytics

FastAPI application entry point.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.app.core.config import get_settings
from backend.app.core.database import async_session_maker
from backend.app.core.logging import setup_logging, get_logger
from backend.app.core.observability import setup_tracing
from backend.app.api import behavior, health, integration
from backend.app.middleware.trace import TracingMiddleware
from backend.app.services.behavior_analytics import BehaviorAnalyticsService
from backend.app.services.integration_aggregator import IntegrationAggregator
from backend.app.workers.scheduled import start_scheduler

settings = get_settings()

# Initialize logging
setup_logging(level=settings.log_level, log_format=settings.log_format)
logger = get_logger(__name__)


async def _reanalyze_recent_users(service: BehaviorAnalyticsService, window_seconds: int):
    count = await service.reanalyze_active_users(window_seconds)
    logger.info(f"Behavior re-analysis completed for {count} user(s)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the services on app.state and run the re-analysis schedule."""
    logger.info(f"🚀 Starting {settings.app_name} v{settings.app_version}")

    app.state.integration_aggregator = IntegrationAggregator(async_session_maker, settings)
    app.state.behavior_analytics = BehaviorAnalyticsService(async_session_maker, settings)

    reanalysis_task = None
    if settings.behavior_reanalysis_enabled:
        interval = settings.behavior_reanalysis_interval_seconds
        reanalysis_task = start_scheduler(
            interval,
            _reanalyze_recent_users,
            app.state.behavior_analytics,
            interval,
            name="behavior_reanalysis",
        )
        logger.info(f"Behavior re-analysis scheduled every {interval}s")

    yield

    logger.info(f"👋 Shutting down {settings.app_name}")
    if reanalysis_task is not None:
        reanalysis_task.cancel()
        try:
            await reanalysis_task
        except asyncio.CancelledError:
            pass
    await app.state.behavior_analytics.shutdown()


app = FastAPI(
    title=settings.app_name,
    description="Cross-module integration and behavior analytics for yacht fleet operations",
    version=settings.app_version,
    lifespan=lifespan,
)

# Initialize Tracing
if settings.tracing_enabled:
    setup_tracing(app, settings)

# Add Middleware
app.add_middleware(TracingMiddleware)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Correlation-ID"],
)

# Include routers
app.include_router(health.router, tags=["Health"])

app.include_router(
    integration.router,
    prefix=settings.api_prefix,
    tags=["Cross-Module Integration"],
)

app.include_router(
    behavior.router,
    prefix=f"{settings.api_prefix}/behavior",
    tags=["Behavior Analytics"],
)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Cross-module integration and behavior analytics for yacht fleet operations",
        "docs": "/docs",
    }
