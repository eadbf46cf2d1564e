"""
Unit tests for PostRepository: reference checks, joined reads, and
owner-scoped writes.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import delete
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from postboard.db.models import Post, User
from postboard.db.repositories.post import clean_update_fields
from postboard.db.storage import Storage
from postboard.exceptions import NotFoundError, StoreUnavailableError, ValidationError
from tests.factories import Backdate, PostFactory, UserFactory

BASE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


async def _drop_user_row(storage: Storage, user: User) -> None:
    """Remove a user directly, bypassing the restrict policy, to leave posts dangling."""
    async with storage.users.session_factory() as session, session.begin():
        await session.execute(delete(User).where(User.id == user.id))


class TestCreatePost:
    """Reference validation and identity assignment."""

    @pytest.mark.asyncio
    async def test_create_assigns_identity_and_timestamps(self, storage: Storage) -> None:
        user = await storage.users.create(UserFactory.build())
        post = PostFactory.build(user_id=user.id, tags=["go", "mongo"])

        returned = await storage.posts.create(post)

        assert returned is post
        assert isinstance(post.id, uuid.UUID)
        assert post.created_at == post.updated_at
        fetched = await storage.posts.get_by_id(post.id)
        assert fetched.title == post.title
        assert fetched.content == post.content
        assert fetched.user_id == user.id
        assert fetched.tags == ["go", "mongo"]

    @pytest.mark.asyncio
    async def test_tags_default_to_empty_list(self, storage: Storage) -> None:
        user = await storage.users.create(UserFactory.build())
        post = Post(title="t", content="c", user_id=user.id)

        await storage.posts.create(post)

        assert (await storage.posts.get_by_id(post.id)).tags == []

    @pytest.mark.asyncio
    async def test_create_for_unknown_user_raises(self, storage: Storage) -> None:
        missing = uuid.uuid4()

        with pytest.raises(NotFoundError) as exc_info:
            await storage.posts.create(PostFactory.build(user_id=missing))

        assert exc_info.value.context == {"user_id": str(missing)}
        assert await storage.posts.get_by_user_id(missing) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"title": "   "},
            {"content": ""},
            {"title": "x" * 201},
            {"tags": ["x" * 51]},
        ],
    )
    async def test_create_applies_update_field_rules(
        self, storage: Storage, overrides: dict[str, object]
    ) -> None:
        user = await storage.users.create(UserFactory.build())
        post = PostFactory.build(user_id=user.id, **overrides)

        with pytest.raises(ValidationError):
            await storage.posts.create(post)
        with pytest.raises(ValidationError):
            clean_update_fields(overrides)

        assert post.id is None
        assert await storage.posts.get_by_user_id(user.id) == []

    @pytest.mark.asyncio
    async def test_failed_insert_leaves_no_identity(
        self, storage: Storage, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        user = await storage.users.create(UserFactory.build())
        post = PostFactory.build(user_id=user.id)
        transaction = storage.posts._transaction

        @asynccontextmanager
        async def failing_transaction(operation: str) -> AsyncIterator[AsyncSession]:
            async with transaction(operation) as session:
                yield session
                raise OperationalError("INSERT", {}, Exception("connection lost"))

        monkeypatch.setattr(storage.posts, "_transaction", failing_transaction)

        with pytest.raises(StoreUnavailableError):
            await storage.posts.create(post)

        assert post.id is None
        assert post.created_at is None
        assert post.updated_at is None
        monkeypatch.undo()
        assert await storage.posts.get_by_user_id(user.id) == []

    @pytest.mark.asyncio
    async def test_get_by_id_unknown_raises(self, storage: Storage) -> None:
        with pytest.raises(NotFoundError):
            await storage.posts.get_by_id(uuid.uuid4())


class TestPostsByUser:
    """get_by_user_id ordering and isolation."""

    @pytest.mark.asyncio
    async def test_scenario_two_users_two_posts(
        self, storage: Storage, backdate: Backdate
    ) -> None:
        u1 = await storage.users.create(UserFactory.build(email="a@x.com"))
        u2 = await storage.users.create(UserFactory.build(email="b@x.com"))
        p1 = await storage.posts.create(PostFactory.build(user_id=u1.id, title="P1"))
        p2 = await storage.posts.create(PostFactory.build(user_id=u2.id, title="P2"))
        await backdate(p1, BASE_TIME)
        await backdate(p2, BASE_TIME - timedelta(days=1))

        by_u1 = await storage.posts.get_by_user_id(u1.id)
        feed = await storage.posts.get_all_with_users(0)

        assert [post.id for post in by_u1] == [p1.id]
        assert [item.post.id for item in feed] == [p1.id, p2.id]
        assert [item.user.id for item in feed] == [u1.id, u2.id]

    @pytest.mark.asyncio
    async def test_unknown_user_has_no_posts(self, storage: Storage) -> None:
        assert await storage.posts.get_by_user_id(uuid.uuid4()) == []

    @pytest.mark.asyncio
    async def test_newest_first(self, storage: Storage, backdate: Backdate) -> None:
        user = await storage.users.create(UserFactory.build())
        posts = [await storage.posts.create(PostFactory.build(user_id=user.id)) for _ in range(3)]
        for offset, post in enumerate(posts):
            await backdate(post, BASE_TIME + timedelta(minutes=offset))

        result = await storage.posts.get_by_user_id(user.id)

        assert [post.id for post in result] == [post.id for post in reversed(posts)]


class TestJoinedReads:
    """Post-with-user and the feed join."""

    @pytest.mark.asyncio
    async def test_get_with_user(self, storage: Storage) -> None:
        user = await storage.users.create(UserFactory.build(username="author"))
        post = await storage.posts.create(PostFactory.build(user_id=user.id))

        joined = await storage.posts.get_with_user(post.id)

        assert joined.post.id == post.id
        assert joined.user.id == user.id
        assert joined.user.username == "author"

    @pytest.mark.asyncio
    async def test_get_with_user_missing_post(self, storage: Storage) -> None:
        with pytest.raises(NotFoundError):
            await storage.posts.get_with_user(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_get_with_user_dangling_owner(self, storage: Storage) -> None:
        user = await storage.users.create(UserFactory.build())
        post = await storage.posts.create(PostFactory.build(user_id=user.id))
        await _drop_user_row(storage, user)

        with pytest.raises(NotFoundError) as exc_info:
            await storage.posts.get_with_user(post.id)

        assert exc_info.value.context == {"post_id": str(post.id), "user_id": str(user.id)}

    @pytest.mark.asyncio
    async def test_feed_limit_returns_newest_with_authors(
        self, storage: Storage, backdate: Backdate
    ) -> None:
        alice = await storage.users.create(UserFactory.build(username="alice"))
        bob = await storage.users.create(UserFactory.build(username="bob"))
        oldest = await storage.posts.create(PostFactory.build(user_id=alice.id))
        middle = await storage.posts.create(PostFactory.build(user_id=bob.id))
        newest = await storage.posts.create(PostFactory.build(user_id=alice.id))
        await backdate(oldest, BASE_TIME)
        await backdate(middle, BASE_TIME + timedelta(hours=1))
        await backdate(newest, BASE_TIME + timedelta(hours=2))

        feed = await storage.posts.get_all_with_users(2)

        assert [item.post.id for item in feed] == [newest.id, middle.id]
        assert [item.user.username for item in feed] == ["alice", "bob"]
        assert all(item.post.user_id == item.user.id for item in feed)

    @pytest.mark.asyncio
    async def test_feed_negative_limit_is_unlimited(self, storage: Storage) -> None:
        user = await storage.users.create(UserFactory.build())
        for _ in range(4):
            await storage.posts.create(PostFactory.build(user_id=user.id))

        assert len(await storage.posts.get_all_with_users(-1)) == 4

    @pytest.mark.asyncio
    async def test_feed_skips_dangling_posts(self, storage: Storage) -> None:
        kept_owner = await storage.users.create(UserFactory.build())
        gone_owner = await storage.users.create(UserFactory.build())
        kept = await storage.posts.create(PostFactory.build(user_id=kept_owner.id))
        await storage.posts.create(PostFactory.build(user_id=gone_owner.id))
        await _drop_user_row(storage, gone_owner)

        feed = await storage.posts.get_all_with_users(0)

        assert [item.post.id for item in feed] == [kept.id]

    @pytest.mark.asyncio
    async def test_feed_on_empty_store(self, storage: Storage) -> None:
        assert await storage.posts.get_all_with_users(10) == []


class TestOwnerScopedUpdate:
    """update() matches on id and owner in one statement."""

    @pytest.mark.asyncio
    async def test_owner_can_update(self, storage: Storage, backdate: Backdate) -> None:
        user = await storage.users.create(UserFactory.build())
        post = await storage.posts.create(PostFactory.build(user_id=user.id, title="before"))
        await backdate(post, BASE_TIME)

        updated = await storage.posts.update(post.id, user.id, {"title": "after", "tags": []})

        assert updated.title == "after"
        assert updated.tags == []
        assert updated.content == post.content
        assert updated.created_at == BASE_TIME
        assert updated.updated_at > BASE_TIME

    @pytest.mark.asyncio
    async def test_wrong_owner_looks_like_missing_post(self, storage: Storage) -> None:
        owner = await storage.users.create(UserFactory.build())
        intruder = await storage.users.create(UserFactory.build())
        post = await storage.posts.create(PostFactory.build(user_id=owner.id, title="keep"))

        with pytest.raises(NotFoundError) as wrong_owner:
            await storage.posts.update(post.id, intruder.id, {"title": "hijacked"})
        with pytest.raises(NotFoundError) as missing:
            await storage.posts.update(uuid.uuid4(), owner.id, {"title": "hijacked"})

        assert str(wrong_owner.value) == str(missing.value)
        assert (await storage.posts.get_by_id(post.id)).title == "keep"

    @pytest.mark.asyncio
    async def test_owner_cannot_be_reassigned(self, storage: Storage) -> None:
        owner = await storage.users.create(UserFactory.build())
        other = await storage.users.create(UserFactory.build())
        post = await storage.posts.create(PostFactory.build(user_id=owner.id))

        with pytest.raises(ValidationError):
            await storage.posts.update(post.id, owner.id, {"user_id": other.id})

        assert (await storage.posts.get_by_id(post.id)).user_id == owner.id


class TestCleanUpdateFields:
    """Validation of partial update payloads."""

    def test_accepts_known_fields(self) -> None:
        assert clean_update_fields({"content": "body", "tags": ("a", "b")}) == {
            "content": "body",
            "tags": ["a", "b"],
        }

    @pytest.mark.parametrize(
        "fields",
        [
            {},
            {"id": "x"},
            {"created_at": BASE_TIME},
            {"author": "someone"},
            {"title": ""},
            {"title": "x" * 201},
            {"content": None},
            {"tags": "not-a-list"},
            {"tags": ["x" * 51]},
        ],
    )
    def test_rejects_bad_payloads(self, fields: dict[str, object]) -> None:
        with pytest.raises(ValidationError):
            clean_update_fields(fields)


class TestOwnerScopedDelete:
    """delete() matches on id and owner in one statement."""

    @pytest.mark.asyncio
    async def test_wrong_owner_then_owner(self, storage: Storage) -> None:
        u1 = await storage.users.create(UserFactory.build())
        u2 = await storage.users.create(UserFactory.build())
        p1 = await storage.posts.create(PostFactory.build(user_id=u1.id, title="P1"))

        with pytest.raises(NotFoundError):
            await storage.posts.delete(p1.id, u2.id)
        unchanged = await storage.posts.get_by_id(p1.id)
        assert unchanged.title == "P1"
        assert unchanged.updated_at == p1.updated_at

        await storage.posts.delete(p1.id, u1.id)

        with pytest.raises(NotFoundError):
            await storage.posts.get_by_id(p1.id)

    @pytest.mark.asyncio
    async def test_delete_twice_raises(self, storage: Storage) -> None:
        user = await storage.users.create(UserFactory.build())
        post = await storage.posts.create(PostFactory.build(user_id=user.id))
        await storage.posts.delete(post.id, user.id)

        with pytest.raises(NotFoundError):
            await storage.posts.delete(post.id, user.id)
