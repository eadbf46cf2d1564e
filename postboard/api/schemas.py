"""
Pydantic schemas for API request/response serialization.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ..db.models import (
    CONTENT_MAX_LENGTH,
    TAG_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    USERNAME_MAX_LENGTH,
    USERNAME_MIN_LENGTH,
    PostWithUser,
    UserWithPosts,
)

Tag = Annotated[str, Field(min_length=1, max_length=TAG_MAX_LENGTH)]

# -----------------------------------------------------------------------------
# User Schemas
# -----------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for registering a user."""

    username: str = Field(
        ...,
        min_length=USERNAME_MIN_LENGTH,
        max_length=USERNAME_MAX_LENGTH,
        description="Unique handle.",
    )
    email: EmailStr = Field(..., description="Unique contact address.")
    password: str = Field(..., min_length=6, max_length=128, description="Account secret.")


class UserResponse(BaseModel):
    """Public view of a user; the password is never included."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Unique user identifier.")
    username: str = Field(..., description="Unique handle.")
    email: str = Field(..., description="Contact address.")
    created_at: datetime = Field(..., description="Record creation timestamp.")
    updated_at: datetime = Field(..., description="Record last update timestamp.")


class PostsCountResponse(BaseModel):
    """Number of posts owned by a user id."""

    user_id: UUID
    count: int = Field(..., ge=0)


# -----------------------------------------------------------------------------
# Post Schemas
# -----------------------------------------------------------------------------


class PostCreate(BaseModel):
    """Request body for creating a post."""

    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH, description="Post title.")
    content: str = Field(
        ..., min_length=1, max_length=CONTENT_MAX_LENGTH, description="Post body."
    )
    user_id: UUID = Field(..., description="Owning user; must exist.")
    tags: list[Tag] = Field(default_factory=list, description="Ordered short labels.")


class PostUpdate(BaseModel):
    """Partial update; only fields present in the body are written."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=TITLE_MAX_LENGTH)
    content: str | None = Field(default=None, min_length=1, max_length=CONTENT_MAX_LENGTH)
    tags: list[Tag] | None = Field(default=None)


class PostResponse(BaseModel):
    """Schema returned when fetching a single post or list item."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Unique post identifier.")
    title: str
    content: str
    user_id: UUID = Field(..., description="Owning user identifier.")
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(..., description="Record creation timestamp.")
    updated_at: datetime = Field(..., description="Record last update timestamp.")


class PostWithUserResponse(PostResponse):
    """A post with its author embedded."""

    user: UserResponse

    @classmethod
    def from_joined(cls, joined: PostWithUser) -> PostWithUserResponse:
        post = PostResponse.model_validate(joined.post)
        return cls(**post.model_dump(), user=UserResponse.model_validate(joined.user))


class UserWithPostsResponse(UserResponse):
    """A user with its posts, newest first."""

    posts: list[PostResponse] = Field(default_factory=list)

    @classmethod
    def from_joined(cls, joined: UserWithPosts) -> UserWithPostsResponse:
        user = UserResponse.model_validate(joined.user)
        return cls(
            **user.model_dump(),
            posts=[PostResponse.model_validate(post) for post in joined.posts],
        )


class PostListResponse(BaseModel):
    """List of posts with a count."""

    posts: list[PostResponse] = Field(default_factory=list)
    count: int = Field(..., ge=0)


class FeedResponse(BaseModel):
    """Newest posts with their authors."""

    posts: list[PostWithUserResponse] = Field(default_factory=list)
    count: int = Field(..., ge=0)


# -----------------------------------------------------------------------------
# Health / Status Schemas
# -----------------------------------------------------------------------------


class HealthStatus(str, Enum):
    """Service health status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    """Health status for a single component."""

    name: str
    status: HealthStatus
    latency_ms: float | None = None
    message: str | None = None


class HealthResponse(BaseModel):
    """Overall service health."""

    status: HealthStatus
    version: str
    environment: str
    components: list[ComponentHealth] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Error Schemas
# -----------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Single field-level error."""

    field: str | None = None
    message: str
    code: str | None = None


class ErrorResponse(BaseModel):
    """Consistent error envelope."""

    error: str
    message: str
    details: list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None = None


__all__ = [
    "ComponentHealth",
    "ErrorDetail",
    "ErrorResponse",
    "FeedResponse",
    "HealthResponse",
    "HealthStatus",
    "PostCreate",
    "PostListResponse",
    "PostResponse",
    "PostUpdate",
    "PostWithUserResponse",
    "PostsCountResponse",
    "UserCreate",
    "UserResponse",
    "UserWithPostsResponse",
]
