"""
Box Office API - Main Application Entry Point

Theatre ticketing backend:
- Per-seat pricing resolved from prioritized price areas
- Concurrency-safe seat holds enforced by a partial unique index
- 2Checkout hosted checkout with idempotent payment reconciliation
- Background sweeper reclaiming expired holds
- Structured logging with request correlation, Prometheus metrics
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from boxoffice.api.middleware import RequestLoggingMiddleware
from boxoffice.api.router import api_router
from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import BoxOfficeError
from boxoffice.core.logging import setup_logging, get_logger
from boxoffice.core.metrics import metrics_endpoint
from boxoffice.db.session import close_db, get_session_factory
from boxoffice.infrastructure.redis_client import get_redis, close_redis
from boxoffice.services.cache_service import get_cache_stats
from boxoffice.services.sweeper import sweeper_loop

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    sweeper_task = None
    if settings.SWEEPER_ENABLED:
        session_factory = app.dependency_overrides.get(get_session_factory, get_session_factory)()
        sweeper_task = asyncio.create_task(
            sweeper_loop(session_factory, settings.SWEEP_INTERVAL_SECONDS)
        )

    yield

    if sweeper_task is not None:
        if sweeper_task.done() and not sweeper_task.cancelled() and sweeper_task.exception():
            logger.error("sweeper_crashed", error=str(sweeper_task.exception()))
        else:
            sweeper_task.cancel()
            try:
                await sweeper_task
            except asyncio.CancelledError:
                pass
    await close_redis()
    await close_db()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Theatre ticketing API with seat holds, per-seat pricing and 2Checkout payments",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.SITE_URL] if settings.ENVIRONMENT == "production" else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(BoxOfficeError)
async def box_office_error_handler(request: Request, exc: BoxOfficeError):
    if exc.status_code >= 500:
        logger.error("request_error", code=exc.code, error=exc.message, details=exc.details)
    else:
        logger.info("request_rejected", code=exc.code, status_code=exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": {
                "code": exc.code,
                "message": exc.message,
                "details": exc.details,
            },
        },
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()
