"""
API route definitions for users and posts.
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from ..db.engine import check_database_health
from ..db.models import Post, User
from .dependencies import (
    OwnerIdDep,
    PostRepoDep,
    SessionFactoryDep,
    SettingsDep,
    UserRepoDep,
)
from .schemas import (
    ComponentHealth,
    ErrorResponse,
    FeedResponse,
    HealthResponse,
    HealthStatus,
    PostCreate,
    PostListResponse,
    PostResponse,
    PostsCountResponse,
    PostUpdate,
    PostWithUserResponse,
    UserCreate,
    UserResponse,
    UserWithPostsResponse,
)

LOGGER = logging.getLogger(__name__)

NOT_FOUND = {404: {"model": ErrorResponse, "description": "No matching record"}}
CONFLICT = {409: {"model": ErrorResponse, "description": "Duplicate or still-referenced record"}}

# -----------------------------------------------------------------------------
# Router Definitions
# -----------------------------------------------------------------------------

health_router = APIRouter(prefix="/v1", tags=["Health"])
users_router = APIRouter(prefix="/v1/users", tags=["Users"])
posts_router = APIRouter(prefix="/v1/posts", tags=["Posts"])


# -----------------------------------------------------------------------------
# Health Endpoints
# -----------------------------------------------------------------------------


@health_router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the service and its database.",
)
async def health_check(
    settings: SettingsDep,
    session_factory: SessionFactoryDep,
) -> HealthResponse:
    """Ping the database and report overall status."""
    db_healthy, db_latency = await check_database_health(session_factory)
    database = ComponentHealth(
        name="database",
        status=HealthStatus.HEALTHY if db_healthy else HealthStatus.UNHEALTHY,
        latency_ms=db_latency,
        message=None if db_healthy else "Database connection failed",
    )
    return HealthResponse(
        status=database.status,
        version=settings.app.version,
        environment=settings.app.environment.value,
        components=[database],
    )


# -----------------------------------------------------------------------------
# User Endpoints
# -----------------------------------------------------------------------------


@users_router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create user",
    responses=CONFLICT,
)
async def create_user(payload: UserCreate, users: UserRepoDep) -> UserResponse:
    """Register a user; email and username must be unused."""
    user = User(username=payload.username, email=payload.email, password=payload.password)
    await users.create(user)
    return UserResponse.model_validate(user)


@users_router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get user",
    responses=NOT_FOUND,
)
async def get_user(user_id: UUID, users: UserRepoDep) -> UserResponse:
    user = await users.get_by_id(user_id)
    return UserResponse.model_validate(user)


@users_router.get(
    "/{user_id}/posts",
    response_model=UserWithPostsResponse,
    summary="Get user with posts",
    description="Returns the user and all of its posts, newest first.",
    responses=NOT_FOUND,
)
async def get_user_with_posts(user_id: UUID, users: UserRepoDep) -> UserWithPostsResponse:
    joined = await users.get_with_posts(user_id)
    return UserWithPostsResponse.from_joined(joined)


@users_router.get(
    "/{user_id}/posts/count",
    response_model=PostsCountResponse,
    summary="Count user posts",
    description="Counts posts owned by the id; unknown ids count zero.",
)
async def get_user_posts_count(user_id: UUID, users: UserRepoDep) -> PostsCountResponse:
    count = await users.get_posts_count(user_id)
    return PostsCountResponse(user_id=user_id, count=count)


@users_router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete user",
    description="Deletes a user that owns no posts.",
    responses={**NOT_FOUND, **CONFLICT},
)
async def delete_user(user_id: UUID, users: UserRepoDep) -> Response:
    await users.delete(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# -----------------------------------------------------------------------------
# Post Endpoints
# -----------------------------------------------------------------------------


@posts_router.post(
    "",
    response_model=PostResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create post",
    responses=NOT_FOUND,
)
async def create_post(payload: PostCreate, posts: PostRepoDep) -> PostResponse:
    """Create a post for an existing user."""
    post = Post(
        title=payload.title,
        content=payload.content,
        user_id=payload.user_id,
        tags=list(payload.tags),
    )
    await posts.create(post)
    return PostResponse.model_validate(post)


@posts_router.get(
    "",
    response_model=FeedResponse,
    summary="Feed",
    description="Newest posts with their authors, resolved in one query.",
)
async def get_feed(
    posts: PostRepoDep,
    limit: Annotated[int, Query(ge=1, le=100, description="Max posts to return")] = 20,
) -> FeedResponse:
    joined = await posts.get_all_with_users(limit)
    items = [PostWithUserResponse.from_joined(item) for item in joined]
    return FeedResponse(posts=items, count=len(items))


@posts_router.get(
    "/by-user/{user_id}",
    response_model=PostListResponse,
    summary="List posts by user",
)
async def list_posts_by_user(user_id: UUID, posts: PostRepoDep) -> PostListResponse:
    items = [PostResponse.model_validate(post) for post in await posts.get_by_user_id(user_id)]
    return PostListResponse(posts=items, count=len(items))


@posts_router.get(
    "/{post_id}",
    response_model=PostResponse,
    summary="Get post",
    responses=NOT_FOUND,
)
async def get_post(post_id: UUID, posts: PostRepoDep) -> PostResponse:
    post = await posts.get_by_id(post_id)
    return PostResponse.model_validate(post)


@posts_router.get(
    "/{post_id}/user",
    response_model=PostWithUserResponse,
    summary="Get post with author",
    responses=NOT_FOUND,
)
async def get_post_with_user(post_id: UUID, posts: PostRepoDep) -> PostWithUserResponse:
    joined = await posts.get_with_user(post_id)
    return PostWithUserResponse.from_joined(joined)


@posts_router.patch(
    "/{post_id}",
    response_model=PostResponse,
    summary="Update post",
    description="Partial update, only by the owner named in X-User-ID.",
    responses=NOT_FOUND,
)
async def update_post(
    post_id: UUID,
    payload: PostUpdate,
    owner_id: OwnerIdDep,
    posts: PostRepoDep,
) -> PostResponse:
    post = await posts.update(post_id, owner_id, payload.model_dump(exclude_unset=True))
    return PostResponse.model_validate(post)


@posts_router.delete(
    "/{post_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete post",
    description="Deletes the post only for the owner named in X-User-ID.",
    responses=NOT_FOUND,
)
async def delete_post(post_id: UUID, owner_id: OwnerIdDep, posts: PostRepoDep) -> Response:
    await posts.delete(post_id, owner_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["health_router", "posts_router", "users_router"]
