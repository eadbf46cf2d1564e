"""
Repository classes for database access.

This module provides specialized repositories for different entity types:
- UserRepository: Data access for User entities
- PostRepository: Data access for Post entities and their joined views
"""

from .base import BaseRepository
from .post import PostRepository
from .user import UserRepository

__all__ = ["BaseRepository", "PostRepository", "UserRepository"]
