"""
Base repository class with shared session and error handling.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...exceptions import ConflictError, StoreUnavailableError

LOGGER = logging.getLogger(__name__)


class BaseRepository:
    """
    Base class for all repositories.

    Each operation opens its own session and transaction from the shared
    factory, bounded by ``operation_timeout`` seconds. Store failures are
    translated into the package's exception hierarchy; caller cancellation
    propagates untouched after the transaction is rolled back.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        operation_timeout: float | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._operation_timeout = operation_timeout

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Expose the underlying session factory."""
        return self._session_factory

    @staticmethod
    def _forget_identity(record: Any) -> None:
        """Undo the id and timestamps assigned to a record whose insert failed."""
        record.id = None
        record.created_at = None
        record.updated_at = None

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Yield a session inside a transaction committed on clean exit."""
        try:
            async with asyncio.timeout(self._operation_timeout):
                async with self._session_factory() as session, session.begin():
                    yield session
        except TimeoutError as exc:
            LOGGER.warning(
                "%s exceeded its %.2fs deadline", operation, self._operation_timeout or 0.0
            )
            raise StoreUnavailableError(
                f"{operation} timed out",
                context={"operation": operation, "timeout": self._operation_timeout},
            ) from exc
        except IntegrityError as exc:
            LOGGER.info("%s rejected by a store constraint: %s", operation, exc.orig)
            raise ConflictError(
                f"{operation} violates a uniqueness constraint",
                context={"operation": operation},
            ) from exc
        except (OperationalError, InterfaceError, PoolTimeoutError) as exc:
            LOGGER.error("%s failed, store unavailable: %s", operation, exc)
            raise StoreUnavailableError(
                f"{operation} failed: store unavailable",
                context={"operation": operation},
            ) from exc


__all__ = ["BaseRepository"]
