"""Pydantic request/response schemas for the CourseForge API.

Defines the public contract for the REST endpoints: starting a generation
job, polling and controlling it, and the health check.

# ─── HOW SCHEMAS WORK ─────────────────────────────────────────────────
#
# FastAPI validates request bodies against these models (invalid bodies
# get a 422) and serializes responses through ``response_model=...``.
#
# Convention: request schemas end with "Request", response schemas end
# with "Response".  Domain models (GenerationConfig, GenerationJob) are
# reused directly rather than mirrored field by field.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from src.models.course import CourseBrief
from src.models.document import CourseResource, Document, SourceType
from src.models.pipeline import GenerationConfig, GenerationJob


class ResourceInput(BaseModel):
    """One course resource: extracted text plus what is already known about it."""

    document_id: str = Field(min_length=1)
    text: str
    title: str = ""
    source_type: SourceType = SourceType.TEXT
    chunked: bool = Field(
        default=False, description="True when the document is already in the course index."
    )
    quality_score: float | None = Field(default=None, ge=0.0, le=100.0)
    chunk_count: int = Field(default=0, ge=0)
    token_count: int = Field(default=0, ge=0)

    def to_resource(self) -> CourseResource:
        return CourseResource(
            document=Document(
                id=self.document_id,
                text=self.text,
                title=self.title,
                source_type=self.source_type,
            ),
            chunked=self.chunked,
            quality_score=self.quality_score,
            chunk_count=self.chunk_count,
            token_count=self.token_count,
        )


class StartGenerationRequest(BaseModel):
    """Course intent and resources submitted to start a generation job."""

    title: str = Field(min_length=1)
    description: str = ""
    objectives: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    resources: list[ResourceInput] = Field(default_factory=list)
    config: GenerationConfig | None = Field(
        default=None, description="Overrides the server's default generation config."
    )

    def to_brief(self, course_id: str) -> CourseBrief:
        return CourseBrief(
            course_id=course_id,
            title=self.title,
            description=self.description,
            objectives=self.objectives,
            topics=self.topics,
            resources=[r.to_resource() for r in self.resources],
        )


class JobStartedResponse(BaseModel):
    """Response returned once a job has been scheduled."""

    job_id: str
    course_id: str
    status: str = "pending"
    websocket_url: str


class JobStatusResponse(BaseModel):
    """Current snapshot of a generation job."""

    job: GenerationJob


class JobControlResponse(BaseModel):
    """Response to a cancel / pause / resume request.

    ``status`` is the job's status when the request was accepted; the
    runner honours the request at its next checkpoint.
    """

    job_id: str
    action: str
    status: str
    message: str


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]
    active_jobs: int = 0


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
