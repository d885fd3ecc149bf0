"""API middleware: CORS, request logging, and error handling.

Starlette middleware is a stack (last added, first executed).  In
``docchat/main.py``::

    app.add_middleware(ErrorHandlingMiddleware, ...)   # inner
    app.add_middleware(RequestLoggingMiddleware)       # outermost

Request flow:  client -> RequestLogging -> ErrorHandling -> route handler

so RequestLoggingMiddleware sees the final status code, including errors
that ErrorHandlingMiddleware turned into JSON bodies.
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from docchat.api.schemas import ErrorResponse
from docchat.utils.errors import DocChatError
from docchat.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware; all origins unless *allowed_origins* is given."""
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                owner_id=request.headers.get("x-owner-id"),
                status=status_code,
                duration_ms=duration_ms,
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


def error_response(exc: DocChatError) -> JSONResponse:
    """Render a :class:`DocChatError` as its JSON body, status and headers."""
    details = exc.details()
    body = ErrorResponse(error=exc.message, code=exc.code, **details)
    headers: dict[str, str] = {}
    if "retryAfter" in details:
        headers["Retry-After"] = str(details["retryAfter"])
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
        headers=headers,
    )


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Convert exceptions into structured JSON errors.

    ``DocChatError`` subclasses keep their own status and code.  Anything
    else becomes a generic 500 whose detail is only exposed when
    *expose_details* is set (development).  Stack traces stay in the logs.
    """

    def __init__(self, app: ASGIApp, expose_details: bool = False) -> None:
        super().__init__(app)
        self._expose_details = expose_details

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except DocChatError as exc:
            log = _logger.warning if exc.status_code < 500 else _logger.error
            log(
                "application_error",
                error_type=type(exc).__name__,
                code=exc.code,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
            )
            return error_response(exc)
        except Exception as exc:
            _logger.exception(
                "unhandled_error",
                error_type=type(exc).__name__,
                path=str(request.url.path),
            )
            body = ErrorResponse(
                error="Internal server error",
                code="INTERNAL_ERROR",
                detail=str(exc) if self._expose_details else None,
            )
            return JSONResponse(
                status_code=500,
                content=body.model_dump(by_alias=True, exclude_none=True),
            )
