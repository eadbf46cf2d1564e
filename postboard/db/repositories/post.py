"""
Post repository for data access operations on Post entities.

Join and ownership notes:
- No foreign key exists on posts.user_id; create() checks the owner through
  the UserRepository instead
- get_all_with_users() resolves the feed in one JOIN, never per-post lookups
- update()/delete() are single conditional writes matching id AND owner
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from sqlalchemy import Select, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...exceptions import NotFoundError, ValidationError
from ..models import (
    CONTENT_MAX_LENGTH,
    TAG_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    Post,
    PostWithUser,
    User,
    utc_now,
)
from .base import BaseRepository
from .user import UserRepository

LOGGER = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"title", "content", "tags"})
IMMUTABLE_FIELDS = frozenset({"id", "user_id", "created_at", "updated_at"})


def _check_text(name: str, value: Any, max_length: int) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string", context={"field": name})
    if len(value) > max_length:
        raise ValidationError(
            f"{name} must be at most {max_length} characters", context={"field": name}
        )
    return value


def _check_tags(value: Any) -> list[str]:
    if not isinstance(value, list | tuple) or not all(isinstance(tag, str) for tag in value):
        raise ValidationError("tags must be a list of strings", context={"field": "tags"})
    if any(len(tag) > TAG_MAX_LENGTH for tag in value):
        raise ValidationError(
            f"tags must be at most {TAG_MAX_LENGTH} characters each", context={"field": "tags"}
        )
    return list(value)


def clean_update_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Validate a partial post update and return the column values to write."""
    if not fields:
        raise ValidationError("no fields to update")

    immutable = sorted(IMMUTABLE_FIELDS.intersection(fields))
    if immutable:
        raise ValidationError(
            f"fields cannot be changed: {', '.join(immutable)}", context={"fields": immutable}
        )
    unknown = sorted(set(fields) - UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(
            f"unknown fields: {', '.join(unknown)}", context={"fields": unknown}
        )

    values: dict[str, Any] = {}
    if "title" in fields:
        values["title"] = _check_text("title", fields["title"], TITLE_MAX_LENGTH)
    if "content" in fields:
        values["content"] = _check_text("content", fields["content"], CONTENT_MAX_LENGTH)
    if "tags" in fields:
        values["tags"] = _check_tags(fields["tags"])
    return values


class PostRepository(BaseRepository):
    """
    Data access helpers for Post entities.

    Holds the UserRepository so that references to owners are validated and
    joined views are assembled here, next to the "many" side.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        users: UserRepository,
        *,
        operation_timeout: float | None = None,
    ) -> None:
        super().__init__(session_factory, operation_timeout=operation_timeout)
        self._users = users

    async def create(self, post: Post) -> Post:
        """
        Persist a new post, assigning its id and timestamps in place.

        Fields are checked by the same rules update() applies. Raises
        ValidationError for a bad field and NotFoundError when post.user_id
        names no existing user.
        """
        post.title = _check_text("title", post.title, TITLE_MAX_LENGTH)
        post.content = _check_text("content", post.content, CONTENT_MAX_LENGTH)
        post.tags = _check_tags(post.tags if post.tags is not None else [])

        try:
            await self._users.get_by_id(post.user_id)
        except NotFoundError as exc:
            LOGGER.info("Rejected post create: unknown owner %s", post.user_id)
            raise NotFoundError(
                "post references an unknown user",
                context={"user_id": str(post.user_id)},
            ) from exc

        now = utc_now()
        post.id = uuid.uuid4()
        post.created_at = now
        post.updated_at = now

        try:
            async with self._transaction("create post") as session:
                session.add(post)
                await session.flush()
        except BaseException:
            self._forget_identity(post)
            raise

        LOGGER.info("Created post %s for user %s", post.id, post.user_id)
        return post

    async def get_by_id(self, post_id: uuid.UUID) -> Post:
        """Fetch a post by id or raise NotFoundError."""
        async with self._transaction("get post") as session:
            post = await session.get(Post, post_id)
        if post is None:
            raise NotFoundError("post not found", context={"post_id": str(post_id)})
        return post

    async def get_by_user_id(self, user_id: uuid.UUID) -> list[Post]:
        """
        Return posts owned by user_id, newest first.

        The owner is not looked up; an unknown id yields an empty list.

        Uses index: ix_posts_user_id_created_at
        """
        async with self._transaction("get posts by user") as session:
            result = await session.scalars(
                select(Post).where(Post.user_id == user_id).order_by(Post.created_at.desc())
            )
            return list(result)

    async def get_with_user(self, post_id: uuid.UUID) -> PostWithUser:
        """
        Fetch a post, then its owner.

        A missing post or a dangling owner reference both raise NotFoundError.
        """
        post = await self.get_by_id(post_id)
        try:
            user = await self._users.get_by_id(post.user_id)
        except NotFoundError as exc:
            LOGGER.warning("Post %s references missing user %s", post.id, post.user_id)
            raise NotFoundError(
                "post owner not found",
                context={"post_id": str(post.id), "user_id": str(post.user_id)},
            ) from exc
        return PostWithUser(post=post, user=user)

    async def get_all_with_users(self, limit: int = 0) -> list[PostWithUser]:
        """
        Return the newest posts joined with their owners in a single query.

        Args:
            limit: Maximum rows to return; zero or negative means unlimited.

        Posts whose owner no longer exists are dropped by the inner join.

        Uses index: ix_posts_created_at
        """
        stmt: Select[tuple[Post, User]] = (
            select(Post, User)
            .join(User, User.id == Post.user_id)
            .order_by(Post.created_at.desc())
        )
        if limit > 0:
            stmt = stmt.limit(limit)

        async with self._transaction("get posts with users") as session:
            result = await session.execute(stmt)
            rows = result.all()
        return [PostWithUser(post=post, user=user) for post, user in rows]

    async def update(
        self,
        post_id: uuid.UUID,
        owner_id: uuid.UUID,
        fields: Mapping[str, Any],
    ) -> Post:
        """
        Apply a partial update to a post owned by owner_id.

        The ownership check and the write are one UPDATE statement, so a
        wrong owner and a missing post both raise NotFoundError and cannot be
        told apart.
        """
        values = clean_update_fields(fields)
        values["updated_at"] = utc_now()

        async with self._transaction("update post") as session:
            result = await session.execute(
                update(Post)
                .where(Post.id == post_id, Post.user_id == owner_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:  # type: ignore[attr-defined]
                LOGGER.info("Update matched no post %s owned by %s", post_id, owner_id)
                raise NotFoundError("post not found", context={"post_id": str(post_id)})
            post = (await session.execute(select(Post).where(Post.id == post_id))).scalar_one()

        LOGGER.info("Updated post %s fields=%s", post_id, sorted(fields))
        return post

    async def delete(self, post_id: uuid.UUID, owner_id: uuid.UUID) -> None:
        """Delete a post owned by owner_id, or raise NotFoundError."""
        async with self._transaction("delete post") as session:
            result = await session.execute(
                delete(Post)
                .where(Post.id == post_id, Post.user_id == owner_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:  # type: ignore[attr-defined]
                LOGGER.info("Delete matched no post %s owned by %s", post_id, owner_id)
                raise NotFoundError("post not found", context={"post_id": str(post_id)})

        LOGGER.info("Deleted post %s", post_id)


__all__ = ["PostRepository", "clean_update_fields"]
