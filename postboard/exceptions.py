"""
Custom exception hierarchy for storage components.
"""

from __future__ import annotations

from typing import Any


class StoreError(Exception):
    """Base exception for all storage-related errors."""

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = context or {}


class NotFoundError(StoreError):
    """Raised when no matching record exists, or an owner-scoped match fails."""


class ConflictError(StoreError):
    """Raised when a write would duplicate a unique field or break a reference."""


class ValidationError(StoreError):
    """Raised when a repository call carries malformed input."""


class StoreUnavailableError(StoreError):
    """Raised when the backing store is unreachable or an operation times out."""


__all__ = [
    "ConflictError",
    "NotFoundError",
    "StoreError",
    "StoreUnavailableError",
    "ValidationError",
]
