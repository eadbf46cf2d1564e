"""
User repository for data access operations on User entities.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import func, or_, select

from ...exceptions import ConflictError, NotFoundError
from ..models import Post, User, UserWithPosts, utc_now
from .base import BaseRepository

LOGGER = logging.getLogger(__name__)


class UserRepository(BaseRepository):
    """Data access helpers for User entities."""

    async def create(self, user: User) -> User:
        """
        Persist a new user, assigning its id and timestamps in place.

        Email and username are checked before the insert; the unique indexes
        on both columns reject a duplicate that races past the check, which
        also surfaces as ConflictError.
        """
        try:
            async with self._transaction("create user") as session:
                existing = await session.scalar(
                    select(User).where(
                        or_(User.email == user.email, User.username == user.username)
                    )
                )
                if existing is not None:
                    field = "email" if existing.email == user.email else "username"
                    LOGGER.info("Rejected user create: duplicate %s", field)
                    raise ConflictError(
                        f"user with this {field} already exists",
                        context={"field": field},
                    )

                now = utc_now()
                user.id = uuid.uuid4()
                user.created_at = now
                user.updated_at = now
                session.add(user)
                await session.flush()
        except BaseException:
            self._forget_identity(user)
            raise

        LOGGER.info("Created user %s (%s)", user.id, user.username)
        return user

    async def get_by_id(self, user_id: uuid.UUID) -> User:
        """Fetch a user by id or raise NotFoundError."""
        async with self._transaction("get user") as session:
            user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError("user not found", context={"user_id": str(user_id)})
        return user

    async def get_by_email(self, email: str) -> User:
        """
        Fetch a user by email or raise NotFoundError.

        Uses unique index uq_users_email.
        """
        async with self._transaction("get user by email") as session:
            user = await session.scalar(select(User).where(User.email == email))
        if user is None:
            raise NotFoundError("user not found", context={"email": email})
        return user

    async def get_by_username(self, username: str) -> User:
        """Fetch a user by username or raise NotFoundError."""
        async with self._transaction("get user by username") as session:
            user = await session.scalar(select(User).where(User.username == username))
        if user is None:
            raise NotFoundError("user not found", context={"username": username})
        return user

    async def get_with_posts(self, user_id: uuid.UUID) -> UserWithPosts:
        """
        Fetch a user together with all of its posts, newest first.

        Both reads share one transaction. A user without posts yields an
        empty list; an unknown user raises NotFoundError.

        Uses index: ix_posts_user_id_created_at
        """
        async with self._transaction("get user with posts") as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("user not found", context={"user_id": str(user_id)})
            result = await session.scalars(
                select(Post).where(Post.user_id == user_id).order_by(Post.created_at.desc())
            )
            posts = list(result)
        return UserWithPosts(user=user, posts=posts)

    async def get_posts_count(self, user_id: uuid.UUID) -> int:
        """
        Return how many posts the given user id owns.

        The user itself is not looked up, so an unknown id counts 0.
        """
        async with self._transaction("count user posts") as session:
            count = await session.scalar(
                select(func.count()).select_from(Post).where(Post.user_id == user_id)
            )
        return int(count or 0)

    async def delete(self, user_id: uuid.UUID) -> None:
        """
        Delete a user that owns no posts.

        Posts are never cascaded: a user that still owns posts raises
        ConflictError. A post inserted between the count and the delete is
        left dangling and later reads treat it as not found.
        """
        async with self._transaction("delete user") as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("user not found", context={"user_id": str(user_id)})
            owned = await session.scalar(
                select(func.count()).select_from(Post).where(Post.user_id == user_id)
            )
            if owned:
                LOGGER.info("Refused to delete user %s owning %d posts", user_id, owned)
                raise ConflictError(
                    "user still owns posts",
                    context={"user_id": str(user_id), "posts": int(owned)},
                )
            await session.delete(user)

        LOGGER.info("Deleted user %s", user_id)


__all__ = ["UserRepository"]
