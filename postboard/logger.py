"""
Logging setup for the service.

Every record carries the id of the HTTP request that produced it, read from
``REQUEST_ID``; records emitted outside a request show ``-``.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from logging.config import dictConfig
from typing import Any

from .config import Settings, get_settings

REQUEST_ID: ContextVar[str] = ContextVar("request_id", default="-")

_configured = False


class RequestIdFilter(logging.Filter):
    """Stamp ``record.request_id`` from the current request context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = REQUEST_ID.get()
        return True


def _resolve_log_level(level_name: str) -> int:
    numeric_level = logging.getLevelName(level_name.upper())
    if isinstance(numeric_level, int):
        return numeric_level
    raise ValueError(f"Unsupported log level: {level_name}")


def build_logging_config(settings: Settings) -> dict[str, Any]:
    """
    Build the dictConfig payload for console and rotating-file output.

    The SQLAlchemy engine logger follows ``database.echo``: statements are
    logged at INFO when echo is on and suppressed below WARNING otherwise.
    """
    log_settings = settings.logging
    level = _resolve_log_level(log_settings.level)
    handler_defaults = {"level": level, "formatter": "standard", "filters": ["request_id"]}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"request_id": {"()": RequestIdFilter}},
        "formatters": {"standard": {"format": log_settings.format}},
        "handlers": {
            "console": {"class": "logging.StreamHandler", **handler_defaults},
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": str(log_settings.directory / log_settings.file_name),
                "encoding": "utf-8",
                "maxBytes": log_settings.max_bytes,
                "backupCount": log_settings.backup_count,
                **handler_defaults,
            },
        },
        "loggers": {
            "sqlalchemy.engine": {
                "level": logging.INFO if settings.database.echo else logging.WARNING,
            },
        },
        "root": {"level": level, "handlers": ["console", "file"]},
    }


def setup_logging(settings: Settings | None = None, *, force: bool = False) -> None:
    """
    Apply the logging config once per process.

    Later calls are no-ops unless ``force`` is set, so each app created in
    the same process does not stack duplicate handlers.
    """
    global _configured

    if _configured and not force:
        return

    runtime_settings = settings or get_settings()
    runtime_settings.logging.directory.mkdir(parents=True, exist_ok=True)
    dictConfig(build_logging_config(runtime_settings))
    _configured = True


__all__ = ["REQUEST_ID", "RequestIdFilter", "build_logging_config", "setup_logging"]
