"""
Storage facade bundling the user and post repositories.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .repositories import PostRepository, UserRepository


@dataclass(frozen=True, slots=True)
class Storage:
    """Single handle built at startup and shared by request handlers."""

    users: UserRepository
    posts: PostRepository

    @classmethod
    def from_session_factory(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        operation_timeout: float | None = None,
    ) -> Storage:
        """Wire both repositories to one session factory."""
        users = UserRepository(session_factory, operation_timeout=operation_timeout)
        posts = PostRepository(session_factory, users, operation_timeout=operation_timeout)
        return cls(users=users, posts=posts)


__all__ = ["Storage"]
