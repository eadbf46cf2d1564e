"""
Shared pytest fixtures for the database, storage, settings, and HTTP client.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from postboard.config import Settings
from postboard.db.engine import create_engine_from_settings, create_session_factory, init_models
from postboard.db.models import Post
from postboard.db.storage import Storage
from tests.factories import Backdate

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def settings_override(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Override global settings with test-friendly configuration."""

    from postboard import config as config_module

    base_settings = config_module.Settings()
    database = base_settings.database.model_copy(
        update={"url": TEST_DATABASE_URL, "echo": False, "operation_timeout_seconds": 5.0}
    )
    overrides = base_settings.model_copy(update={"database": database})
    monkeypatch.setattr(config_module, "get_settings", lambda: overrides)
    return overrides


@pytest.fixture
async def db_engine(settings_override: Settings) -> AsyncIterator[AsyncEngine]:
    """Provide a fresh in-memory SQLite engine with the schema created."""

    engine = create_engine_from_settings(settings_override.database)
    await init_models(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)


@pytest.fixture
def storage(
    session_factory: async_sessionmaker[AsyncSession], settings_override: Settings
) -> Storage:
    """Storage facade wired to the test database."""

    return Storage.from_session_factory(
        session_factory,
        operation_timeout=settings_override.database.operation_timeout_seconds,
    )


@pytest.fixture
def backdate(session_factory: async_sessionmaker[AsyncSession]) -> Backdate:
    """Return a helper that rewrites a stored post's timestamps."""

    async def _backdate(post: Post, when: datetime) -> None:
        async with session_factory() as session, session.begin():
            await session.execute(
                update(Post).where(Post.id == post.id).values(created_at=when, updated_at=when)
            )
        post.created_at = when
        post.updated_at = when

    return _backdate


@pytest.fixture
async def client(
    settings_override: Settings,
    storage: Storage,
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncClient]:
    """HTTP client bound to an app whose state points at the test storage."""

    from postboard.api.main import create_app

    app = create_app(settings_override)
    # ASGITransport does not run the lifespan, so attach state directly.
    app.state.storage = storage
    app.state.session_factory = session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
