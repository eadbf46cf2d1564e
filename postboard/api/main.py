"""
FastAPI application factory: lifespan, request context, and the mapping of
storage errors onto HTTP responses.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import Settings, get_settings
from ..exceptions import (
    ConflictError,
    NotFoundError,
    StoreError,
    StoreUnavailableError,
    ValidationError,
)
from ..logger import REQUEST_ID, setup_logging
from .dependencies import lifespan_dependencies
from .routes import health_router, posts_router, users_router
from .schemas import ErrorDetail, ErrorResponse

LOGGER = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

STORE_ERROR_STATUS: dict[type[StoreError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _status_for(exc: StoreError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in STORE_ERROR_STATUS:
            return STORE_ERROR_STATUS[error_type]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: list[ErrorDetail] | None = None,
) -> JSONResponse:
    """
    Render the shared error envelope and remember the error kind.

    The kind is read back by the request middleware for its access log line.
    """
    request.state.error_kind = error
    envelope = ErrorResponse(
        error=error,
        message=message,
        details=details or [],
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=status_code, content=envelope.model_dump(exclude_none=True))


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application around the given (or cached) settings."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging(settings)
        LOGGER.info(
            "Starting %s v%s (%s)",
            settings.app.name,
            settings.app.version,
            settings.app.environment.value,
        )
        async with lifespan_dependencies(app, settings):
            yield
        LOGGER.info("Shutdown complete")

    app = FastAPI(
        title=settings.app.name,
        version=settings.app.version,
        description="Users and posts with joined views and owner-scoped writes",
        docs_url="/docs" if settings.app.debug else None,
        redoc_url="/redoc" if settings.app.debug else None,
        openapi_url="/openapi.json" if settings.app.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    @app.middleware("http")
    async def request_context_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Bind the request id to the logging context and log one line per request."""
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        token = REQUEST_ID.set(request_id)
        start_time = time.perf_counter()
        try:
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start_time) * 1000
            error_kind = getattr(request.state, "error_kind", None)
            LOGGER.log(
                logging.WARNING if response.status_code >= 500 else logging.INFO,
                "%s %s -> %d%s (%.2fms)",
                request.method,
                request.url.path,
                response.status_code,
                f" {error_kind}" if error_kind else "",
                duration_ms,
            )
        finally:
            REQUEST_ID.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @app.exception_handler(StoreError)
    async def store_exception_handler(request: Request, exc: StoreError) -> JSONResponse:
        status_code = _status_for(exc)
        if isinstance(exc, StoreUnavailableError):
            LOGGER.error("Store unavailable: %s %s", exc, exc.context)
        return _error_response(request, status_code, type(exc).__name__, str(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return _error_response(request, exc.status_code, "HTTPException", str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report request body and parameter errors in the same shape as storage ones."""
        details = [
            ErrorDetail(
                field=".".join(str(loc) for loc in error.get("loc", [])),
                message=error.get("msg", "Validation error"),
                code=error.get("type"),
            )
            for error in exc.errors()
        ]
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            ValidationError.__name__,
            "Request validation failed",
            details,
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        # Runs outside the middleware, after the logging context is reset.
        LOGGER.exception(
            "Unhandled exception: %s [%s]", exc, getattr(request.state, "request_id", None)
        )
        message = str(exc) if settings.app.debug else "An internal error occurred"
        return _error_response(
            request, status.HTTP_500_INTERNAL_SERVER_ERROR, "InternalServerError", message
        )

    app.include_router(health_router)
    app.include_router(users_router)
    app.include_router(posts_router)

    return app


app = create_app()


__all__ = ["REQUEST_ID_HEADER", "app", "create_app"]
