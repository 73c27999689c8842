"""HTTP middleware: CORS, per-request logging and error-to-status mapping.

# ─── ORDER OF THE MIDDLEWARE STACK ────────────────────────────────────
#
#   main.py adds ErrorHandlingMiddleware first and RequestLoggingMiddleware
#   second; Starlette runs the last-added one outermost:
#
#     client → RequestLogging → ErrorHandling → route
#
#   The request log therefore records the status code produced by the
#   error mapping (404 / 409 / 422 / 503 / 500), not an unhandled 500.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.api.schemas import ErrorResponse
from src.utils.errors import (
    CourseForgeError,
    JobAlreadyRunningError,
    JobNotFoundError,
    PipelineError,
    RetrievalUnavailableError,
    TransientServiceError,
    ValidationError,
)
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Allow browser clients on *allowed_origins* (all origins when unset)."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One ``http_request`` log line per request, with timing."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            _logger.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=status,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------

# First match wins, so subclasses must precede their bases.
_STATUS_BY_ERROR: tuple[tuple[type[CourseForgeError], int], ...] = (
    (JobNotFoundError, 404),
    (JobAlreadyRunningError, 409),
    (PipelineError, 409),
    (ValidationError, 422),
    (TransientServiceError, 503),
    (RetrievalUnavailableError, 503),
)


def status_code_for(exc: CourseForgeError) -> int:
    """HTTP status for an application error; 500 when nothing more specific applies."""
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catch ``CourseForgeError`` subclasses and return structured JSON errors.

    Unknown jobs map to 404, lock and state-transition conflicts to 409,
    bad input to 422, unreachable services to 503 and everything else
    to 500.  Stack traces are logged server-side only.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except CourseForgeError as exc:
            status = status_code_for(exc)
            log = _logger.error if status >= 500 else _logger.warning
            log(
                "application_error",
                error_type=exc.kind,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status,
            )
            body = ErrorResponse(error=exc.kind, detail=exc.message)
            return JSONResponse(status_code=status, content=body.model_dump())
