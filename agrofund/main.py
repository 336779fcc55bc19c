"""
AgroFund Marketplace API — Application entry-point.

Initializes the FastAPI application, registers middleware, exception handlers,
routers and static file serving, and manages the application lifecycle
(DB table creation on startup, realtime feed shutdown).
"""

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text

from agrofund.api.v1.api import api_router
from agrofund.core.cache import build_cache
from agrofund.core.config import settings
from agrofund.core.exceptions import add_exception_handlers
from agrofund.core.logging import setup_logging
from agrofund.core.resilience import db_circuit_breaker, retry_with_backoff
from agrofund.db.base import SQLModel
from agrofund.db.session import AsyncSessionLocal, engine
from agrofund.middleware import RequestIDMiddleware, RequestTimingMiddleware
from agrofund.realtime.feed import ChangeFeed
from agrofund.storage import LocalObjectStorage

# ── Initialise production logging (rotating files + JSON structured) ──
setup_logging()
logger = logging.getLogger(__name__)


@retry_with_backoff(max_retries=4, base_delay=2.0, max_delay=16.0, jitter=False)
async def create_tables() -> None:
    """Create all tables; transient connection errors are retried with backoff."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


# ────────────────────────────────────────────────────────────────────────────
# Application lifespan
# ────────────────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Manages startup / shutdown lifecycle events.

    Startup:
      - Creates tables, retrying while the database comes up.  If it stays
        unreachable the app starts in degraded mode (``/health`` reports
        ``database: false``).
      - Attaches the response cache and the realtime change feed to
        ``app.state``.

    Shutdown:
      - Ends every realtime subscription, then disposes of the connection pool.
    """
    app.state.cache = build_cache()
    app.state.change_feed = ChangeFeed()

    try:
        await create_tables()
        logger.info("Database tables ready")
    except Exception as exc:
        logger.error(
            "Could not connect to database. The application will start in "
            "DEGRADED mode until the database becomes available. Last error: %s",
            exc,
        )

    yield

    logger.info("Shutting down — closing realtime subscriptions and disposing connection pool")
    app.state.change_feed.close_all()
    await engine.dispose()


# ────────────────────────────────────────────────────────────────────────────
# FastAPI application instance
# ────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description=(
        "Agricultural crowdfunding marketplace: farmers list projects, "
        "investors fund them, admins review KYC documents."
    ),
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

# Storage is needed by request handlers as soon as the app exists, so it is
# attached here rather than in the lifespan.
os.makedirs(settings.STORAGE_DIR, exist_ok=True)
app.state.storage = LocalObjectStorage()

# ── Middleware (order matters: outermost = first to execute) ──
app.add_middleware(GZipMiddleware, minimum_size=500)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(RequestTimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Global error handlers ──
add_exception_handlers(app)

# ── API routers ──
app.include_router(api_router, prefix=settings.API_V1_STR)

# ── Uploaded files (KYC documents, project images, avatars) ──
app.mount(
    settings.STORAGE_PUBLIC_URL,
    StaticFiles(directory=settings.STORAGE_DIR),
    name="storage",
)


# ── Health check ──


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Liveness / readiness probe with database connectivity check.

    Also reports circuit breaker state, cache statistics and the number of
    live realtime subscriptions.
    """
    db_healthy = True
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception:
        db_healthy = False

    status = "ok" if db_healthy else "degraded"
    cache = getattr(app.state, "cache", None)
    feed = getattr(app.state, "change_feed", None)
    return {
        "status": status,
        "version": "1.0.0",
        "database": db_healthy,
        "circuit_breaker": db_circuit_breaker.get_status(),
        "cache": cache.get_stats() if cache is not None else None,
        "realtime": feed.get_stats() if feed is not None else None,
    }
