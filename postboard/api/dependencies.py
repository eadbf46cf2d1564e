"""
FastAPI dependency injection providers.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated
from uuid import UUID

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings, get_settings
from ..db.engine import create_engine_from_settings, create_session_factory, init_models
from ..db.repositories import PostRepository, UserRepository
from ..db.storage import Storage

LOGGER = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Settings
# -----------------------------------------------------------------------------


def get_app_settings(request: Request) -> Settings:
    """Return the settings the application was built with."""
    settings: Settings | None = getattr(request.app.state, "settings", None)
    return settings if settings is not None else get_settings()


SettingsDep = Annotated[Settings, Depends(get_app_settings)]


# -----------------------------------------------------------------------------
# Storage
# -----------------------------------------------------------------------------


def get_storage(request: Request) -> Storage:
    """Return the Storage handle attached to the application at startup."""
    storage: Storage | None = getattr(request.app.state, "storage", None)
    if storage is None:
        raise RuntimeError("Storage is not initialized; application lifespan has not run.")
    return storage


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Return the session factory used for health checks."""
    return request.app.state.session_factory


StorageDep = Annotated[Storage, Depends(get_storage)]
SessionFactoryDep = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


async def get_user_repository(storage: StorageDep) -> UserRepository:
    """Provide the shared UserRepository."""
    return storage.users


async def get_post_repository(storage: StorageDep) -> PostRepository:
    """Provide the shared PostRepository."""
    return storage.posts


UserRepoDep = Annotated[UserRepository, Depends(get_user_repository)]
PostRepoDep = Annotated[PostRepository, Depends(get_post_repository)]


# -----------------------------------------------------------------------------
# Acting User
# -----------------------------------------------------------------------------


async def require_owner_id(
    x_user_id: Annotated[UUID | None, Header(alias="X-User-ID")] = None,
) -> UUID:
    """
    Require the acting user's id for owner-scoped writes or raise 401.

    Ownership is an id match only; there is no authentication behind it.
    """
    if x_user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header is required.",
        )
    return x_user_id


OwnerIdDep = Annotated[UUID, Depends(require_owner_id)]


# -----------------------------------------------------------------------------
# Lifecycle Helpers
# -----------------------------------------------------------------------------


@asynccontextmanager
async def lifespan_dependencies(app: FastAPI, settings: Settings) -> AsyncIterator[None]:
    """
    Context manager for application lifespan.

    Builds the engine, session factory and Storage once and attaches them to
    ``app.state``; disposes the engine on shutdown.
    """
    LOGGER.info("Initializing application dependencies...")

    engine = create_engine_from_settings(settings.database)
    await init_models(engine)
    session_factory = create_session_factory(engine)

    app.state.session_factory = session_factory
    app.state.storage = Storage.from_session_factory(
        session_factory,
        operation_timeout=settings.database.operation_timeout_seconds,
    )

    try:
        yield
    finally:
        LOGGER.info("Shutting down application dependencies...")
        app.state.storage = None
        app.state.session_factory = None
        await engine.dispose()


__all__ = [
    "OwnerIdDep",
    "PostRepoDep",
    "SessionFactoryDep",
    "SettingsDep",
    "StorageDep",
    "UserRepoDep",
    "get_app_settings",
    "get_post_repository",
    "get_session_factory",
    "get_settings",
    "get_storage",
    "get_user_repository",
    "lifespan_dependencies",
    "require_owner_id",
]
