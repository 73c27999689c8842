"""FastAPI API routes for course generation.

Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern.  Application errors raised by
the orchestrator are left to :class:`ErrorHandlingMiddleware`, which maps
them onto status codes.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                                   Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/courses/{course_id}/generation     POST    Start a generation job (202)
# /api/v1/jobs/{job_id}/status               GET     Current job snapshot
# /api/v1/jobs/{job_id}/cancel               POST    Request cancellation
# /api/v1/jobs/{job_id}/pause                POST    Request a pause
# /api/v1/jobs/{job_id}/resume               POST    Resume a paused job
# /api/v1/health                             GET     Health + provider status
# /ws/jobs/{job_id}                          WS      Status snapshot, then events
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Request

from src.api.schemas import (
    ErrorResponse,
    HealthResponse,
    JobControlResponse,
    JobStartedResponse,
    JobStatusResponse,
    StartGenerationRequest,
)
from src.models.pipeline import GenerationJob
from src.pipeline.orchestrator import GenerationOrchestrator
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

_VERSION = "0.1.0"

router = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Dependency injection helpers: resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_orchestrator(request: Request) -> GenerationOrchestrator:
    """Return the generation orchestrator from application state."""
    return request.app.state.orchestrator


OrchestratorDep = Annotated[GenerationOrchestrator, Depends(_get_orchestrator)]


# ---------------------------------------------------------------------------
# Generation endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/courses/{course_id}/generation",
    status_code=202,
    response_model=JobStartedResponse,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    summary="Start generating a course draft",
)
async def start_generation(
    course_id: str,
    body: StartGenerationRequest,
    orchestrator: OrchestratorDep,
) -> JobStartedResponse:
    """Schedule a generation job for *course_id* and return immediately."""
    job_id = orchestrator.start(body.to_brief(course_id), body.config)
    _logger.info("generation_requested", course_id=course_id, job_id=job_id)
    return JobStartedResponse(
        job_id=job_id,
        course_id=course_id,
        websocket_url=f"/ws/jobs/{job_id}",
    )


@router.get(
    "/jobs/{job_id}/status",
    response_model=JobStatusResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get a job's current snapshot",
)
async def get_job_status(job_id: str, orchestrator: OrchestratorDep) -> JobStatusResponse:
    return JobStatusResponse(job=orchestrator.status(job_id))


@router.post(
    "/jobs/{job_id}/cancel",
    response_model=JobControlResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Cancel a job",
)
async def cancel_job(job_id: str, orchestrator: OrchestratorDep) -> JobControlResponse:
    job = orchestrator.cancel(job_id)
    return _control_response(job, "cancel", "Cancellation requested")


@router.post(
    "/jobs/{job_id}/pause",
    response_model=JobControlResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Pause a job at its next checkpoint",
)
async def pause_job(job_id: str, orchestrator: OrchestratorDep) -> JobControlResponse:
    job = orchestrator.pause(job_id)
    return _control_response(job, "pause", "Pause requested")


@router.post(
    "/jobs/{job_id}/resume",
    response_model=JobControlResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Resume a paused job",
)
async def resume_job(job_id: str, orchestrator: OrchestratorDep) -> JobControlResponse:
    job = orchestrator.resume(job_id)
    return _control_response(job, "resume", "Job resumed")


def _control_response(job: GenerationJob, action: str, message: str) -> JobControlResponse:
    return JobControlResponse(
        job_id=job.job_id,
        action=action,
        status=job.status.value,
        message=message,
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability.

    ``healthy`` needs both the model provider and the index; without the
    optional reranker the service still reports healthy.
    """
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    critical_ok = providers.get("llm", False) and providers.get("embedding", False)
    status = "healthy" if critical_ok else "degraded"

    orchestrator: GenerationOrchestrator | None = getattr(request.app.state, "orchestrator", None)
    active = len(orchestrator.active_jobs()) if orchestrator is not None else 0
    return HealthResponse(status=status, version=_VERSION, providers=providers, active_jobs=active)
