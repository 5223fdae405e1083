"""HTTP middleware and error mapping for the daemon API.

Component errors are translated to status codes in ``STATUS_BY_ERROR`` and
nowhere else. Every error body has the shape
``{"error": <category>, "detail": <message>}``; tracebacks stay in the log.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from airdaemon.lib.errors import (
    AirDaemonError,
    NotFoundError,
    OperationTimeoutError,
    OutsideRootError,
    SizeLimitExceededError,
    ValidationError,
)
from airdaemon.lib.logging_config import get_logger
from airdaemon.serve.models import ErrorResponse

logger = get_logger(__name__)

# Checked in order, so subclasses must precede their bases
STATUS_BY_ERROR: tuple[tuple[type[AirDaemonError], int], ...] = (
    (ValidationError, 400),
    (OutsideRootError, 403),
    (NotFoundError, 404),
    (SizeLimitExceededError, 413),
    (OperationTimeoutError, 504),
)

_HTTP_CATEGORIES = {
    400: "validation",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
}


def status_for(error: AirDaemonError) -> int:
    """Return the HTTP status code for *error* (500 when unmapped)."""
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return 500


def error_response(status_code: int, category: str, detail: str) -> JSONResponse:
    """Build the JSON error response."""
    body = ErrorResponse(error=category, detail=detail)
    return JSONResponse(status_code=status_code, content=body.model_dump())


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Convert exceptions raised by handlers into JSON error responses."""

    def __init__(self, app: ASGIApp, debug: bool = False) -> None:
        """Initialize the middleware.

        Args:
            app: The wrapped ASGI application.
            debug: Include the exception text of unexpected errors in the
                response detail.
        """
        super().__init__(app)
        self.debug = debug

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        try:
            return await call_next(request)
        except AirDaemonError as exc:
            status_code = status_for(exc)
            if status_code >= 500:
                logger.error(
                    f"{request.method} {request.url.path} failed: {exc}", exc_info=True
                )
            else:
                logger.warning(f"{request.method} {request.url.path}: {exc.message}")
            return error_response(status_code, exc.category, exc.message)
        except Exception as exc:
            logger.error(
                f"Unhandled error on {request.method} {request.url.path}: {exc}",
                exc_info=True,
            )
            detail = str(exc) if self.debug else "Internal Server Error"
            return error_response(500, "fatal", detail)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration of every request."""

    def __init__(self, app: ASGIApp, debug: bool = False) -> None:
        """Initialize the middleware.

        Args:
            app: The wrapped ASGI application.
            debug: Log request headers as well.
        """
        super().__init__(app)
        self.debug = debug

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        start = time.perf_counter()
        if self.debug:
            headers = dict(request.headers)
            logger.debug(f"{request.method} {request.url.path} headers={headers}")
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({duration_ms:.1f}ms)"
        )
        return response


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        messages.append(f"{location}: {error.get('msg')}")
    detail = "; ".join(messages) or "Invalid request"
    logger.warning(f"{request.method} {request.url.path}: {detail}")
    return error_response(400, "validation", detail)


async def _http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    category = _HTTP_CATEGORIES.get(exc.status_code, "http_error")
    return error_response(exc.status_code, category, str(exc.detail))


def register_error_handlers(app: FastAPI) -> None:
    """Install handlers for errors raised before a route handler runs."""
    app.add_exception_handler(
        RequestValidationError,
        _validation_error_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        StarletteHTTPException,
        _http_error_handler,  # type: ignore[arg-type]
    )
