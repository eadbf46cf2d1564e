"""
Database toolkit exposing ORM models, repositories, and the storage facade.
"""

from .engine import (
    check_database_health,
    create_engine_from_settings,
    create_session_factory,
    init_models,
)
from .models import Base, Post, PostWithUser, User, UserWithPosts
from .repositories import BaseRepository, PostRepository, UserRepository
from .storage import Storage

__all__ = [
    "Base",
    "BaseRepository",
    "Post",
    "PostRepository",
    "PostWithUser",
    "Storage",
    "User",
    "UserRepository",
    "UserWithPosts",
    "check_database_health",
    "create_engine_from_settings",
    "create_session_factory",
    "init_models",
]
