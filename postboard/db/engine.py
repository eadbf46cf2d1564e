"""
Engine and session factory construction for the backing store.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from ..config import DatabaseSettings
from .models import Base

LOGGER = logging.getLogger(__name__)


def _engine_options(database: DatabaseSettings) -> dict[str, Any]:
    """Translate pool settings into create_async_engine keyword arguments."""
    url = make_url(database.url)
    if url.get_backend_name() == "sqlite":
        # SQLite has no server-side pool; an in-memory database must share
        # one connection or every checkout sees an empty schema.
        if url.database in (None, "", ":memory:"):
            return {"poolclass": StaticPool}
        return {}

    # QueuePool needs at least one persistent slot; overflow covers the rest so
    # pool_size + max_overflow never exceeds max_pool_size.
    pool_size = max(database.min_pool_size, 1)
    return {
        "pool_size": pool_size,
        "max_overflow": max(database.max_pool_size - pool_size, 0),
        "pool_recycle": database.max_idle_seconds,
        "pool_timeout": database.operation_timeout_seconds,
        "pool_pre_ping": True,
    }


def create_engine_from_settings(database: DatabaseSettings) -> AsyncEngine:
    """Create an async engine configured with the pool knobs from settings."""
    engine = create_async_engine(
        database.url,
        echo=database.echo,
        **_engine_options(database),
    )
    LOGGER.info(
        "Database engine created (backend=%s, max_pool=%d, min_pool=%d, idle=%ds)",
        engine.url.get_backend_name(),
        database.max_pool_size,
        database.min_pool_size,
        database.max_idle_seconds,
    )
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory whose objects stay readable after commit."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """
    Create tables and indexes if they do not exist yet.

    Safe to run on every startup; existing objects are left untouched.
    """
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    LOGGER.info("Database tables and indexes ensured: %s", sorted(Base.metadata.tables))


async def check_database_health(
    session_factory: async_sessionmaker[AsyncSession],
) -> tuple[bool, float]:
    """Check database connectivity and return (healthy, latency_ms)."""
    start = time.perf_counter()
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        latency = (time.perf_counter() - start) * 1000
        return True, latency
    except Exception as exc:
        LOGGER.error("Database health check failed: %s", exc)
        latency = (time.perf_counter() - start) * 1000
        return False, latency


__all__ = [
    "check_database_health",
    "create_engine_from_settings",
    "create_session_factory",
    "init_models",
]
