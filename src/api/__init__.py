"""CourseForge HTTP layer: REST routes, job WebSocket and middleware."""

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
    status_code_for,
)
from src.api.routes import router
from src.api.schemas import (
    ErrorResponse,
    HealthResponse,
    JobControlResponse,
    JobStartedResponse,
    JobStatusResponse,
    ResourceInput,
    StartGenerationRequest,
)
from src.api.websocket import websocket_job_events

__all__ = [
    "ErrorHandlingMiddleware",
    "ErrorResponse",
    "HealthResponse",
    "JobControlResponse",
    "JobStartedResponse",
    "JobStatusResponse",
    "RequestLoggingMiddleware",
    "ResourceInput",
    "StartGenerationRequest",
    "configure_cors",
    "router",
    "status_code_for",
    "websocket_job_events",
]
