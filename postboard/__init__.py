"""
Users and posts over a schema-light store, with hand-built joins and
owner-scoped writes.
"""

from .exceptions import (
    ConflictError,
    NotFoundError,
    StoreError,
    StoreUnavailableError,
    ValidationError,
)

__all__ = [
    "ConflictError",
    "NotFoundError",
    "StoreError",
    "StoreUnavailableError",
    "ValidationError",
]
