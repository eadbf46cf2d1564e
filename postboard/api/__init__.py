"""
FastAPI REST API exposing users, posts and their joined views.
"""

from .main import app, create_app
from .routes import health_router, posts_router, users_router

__all__ = [
    "app",
    "create_app",
    "health_router",
    "posts_router",
    "users_router",
]
