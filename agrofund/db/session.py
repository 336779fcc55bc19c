"""
Database session management.

Provides an async SQLAlchemy engine and a dependency-injectable session factory
for use across the application via FastAPI's ``Depends()`` mechanism.  Every
session is a :class:`~agrofund.db.changes.TrackedSession` underneath, so
committed writes reach the realtime change feed.
"""

from collections.abc import AsyncGenerator
from typing import Any, Optional

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from agrofund.core.config import settings
from agrofund.db.changes import FEED_KEY, TrackedSession

# ── Engine creation (PostgreSQL or SQLite) ──
if settings.USE_SQLITE:
    # In-memory SQLite for zero-dependency testing.
    # StaticPool forces every connection to share the SAME in-memory database;
    # without it, each async connection would get its own empty database.
    from sqlalchemy.pool import StaticPool

    engine = create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # SQLite leaves FK enforcement off unless asked per connection.
    # The listener goes on the *sync* engine; aiosqlite wraps a sync connection.
    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

else:
    engine = create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        future=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
    )

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    sync_session_class=TrackedSession,
    # Attributes must stay readable after commit(); a lazy refresh would need
    # sync I/O, which async sessions cannot do.
    expire_on_commit=False,
)


def open_session(change_feed: Optional[Any] = None) -> AsyncSession:
    """New session publishing its committed changes to ``change_feed``."""
    return AsyncSessionLocal(info={FEED_KEY: change_feed})


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields an async database session.

    The session is closed when the request finishes; uncommitted work is
    rolled back and its captured changes discarded.
    """
    async with open_session(getattr(request.app.state, "change_feed", None)) as session:
        yield session
