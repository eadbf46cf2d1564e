"""
SQLAlchemy ORM models for users and posts, plus the joined read shapes.

Posts reference users by ``user_id`` without a database foreign key; the
reference is enforced by :class:`~postboard.db.repositories.PostRepository`.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String, Text, TypeDecorator, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Dialect
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20
TITLE_MAX_LENGTH = 200
CONTENT_MAX_LENGTH = 5000
TAG_MAX_LENGTH = 50

TagList = JSON().with_variant(JSONB(), "postgresql")


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    """
    Timezone-aware datetime stored as UTC on every backend.

    SQLite drops tzinfo on the way in; values read back are re-tagged as UTC
    so ordering and equality behave the same as on PostgreSQL.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> Any:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        value = value.astimezone(UTC)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(AsyncAttrs, DeclarativeBase):
    """Declarative base that enables async-friendly ORM operations."""

    pass


class TimestampMixin:
    """Reusable timestamp columns for auditing."""

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utc_now,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utc_now,
        server_default=func.now(),
    )


class User(TimestampMixin, Base):
    """Account that owns posts."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(USERNAME_MAX_LENGTH), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    # Stored as supplied; never serialized outward.
    password: Mapped[str] = mapped_column(String(255), nullable=False)

    __table_args__ = (
        Index("uq_users_email", "email", unique=True),
        Index("uq_users_username", "username", unique=True),
    )

    def __repr__(self) -> str:
        return f"User(id={self.id!r}, username={self.username!r}, email={self.email!r})"


class Post(TimestampMixin, Base):
    """Text post written by a user."""

    __tablename__ = "posts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(TITLE_MAX_LENGTH), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    tags: Mapped[list[str]] = mapped_column(TagList, nullable=False, default=list)

    __table_args__ = (
        Index("ix_posts_user_id", "user_id"),
        Index("ix_posts_created_at", "created_at"),
        # Covers get_by_user_id ordering
        Index("ix_posts_user_id_created_at", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"Post(id={self.id!r}, user_id={self.user_id!r}, title={self.title!r})"


@dataclass(slots=True)
class PostWithUser:
    """A post joined with its owning user."""

    post: Post
    user: User


@dataclass(slots=True)
class UserWithPosts:
    """A user joined with the posts it owns, newest first."""

    user: User
    posts: list[Post] = field(default_factory=list)


__all__ = [
    "CONTENT_MAX_LENGTH",
    "TAG_MAX_LENGTH",
    "TITLE_MAX_LENGTH",
    "USERNAME_MAX_LENGTH",
    "USERNAME_MIN_LENGTH",
    "Base",
    "Post",
    "PostWithUser",
    "TimestampMixin",
    "UTCDateTime",
    "User",
    "UserWithPosts",
    "utc_now",
]
