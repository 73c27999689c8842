"""Generation job state models.

All models use frozen config; the job runner produces each new
:class:`GenerationJob` snapshot via ``model_copy(update={...})``.  A
snapshot can therefore be handed to API callers, event subscribers and the
persistence collaborator without anyone being able to mutate the live job.

Job lifecycle::

    pending ──→ running(document_analysis → content_extraction
                        → ai_processing → structure_generation) ──→ completed
        │            │  ↑
        │            ↓  │ resume
        │          paused
        └────────────┴──────────→ failed | cancelled   (from any non-terminal)
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.models.course import CourseLevel
from src.models.quality import QualityThresholds


class GenerationStage(str, Enum):  # noqa: UP042: StrEnum requires Python 3.11+
    """Sub-stages of a running job, in execution order."""

    DOCUMENT_ANALYSIS = "document_analysis"
    CONTENT_EXTRACTION = "content_extraction"
    AI_PROCESSING = "ai_processing"
    STRUCTURE_GENERATION = "structure_generation"


STAGE_ORDER: tuple[GenerationStage, ...] = (
    GenerationStage.DOCUMENT_ANALYSIS,
    GenerationStage.CONTENT_EXTRACTION,
    GenerationStage.AI_PROCESSING,
    GenerationStage.STRUCTURE_GENERATION,
)


class JobStatus(str, Enum):  # noqa: UP042
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @property
    def is_active(self) -> bool:
        return not self.is_terminal


_TERMINAL = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# Configuration supplied at job start
# ---------------------------------------------------------------------------
class GenerationConfig(BaseModel):
    """Everything the Chunker and the orchestrator need for one job.

    Supplied once at job start and never mutated while the job runs.
    """

    model_config = ConfigDict(frozen=True)

    # Chunking (word-token counts).
    target_chunk_size: int = Field(default=1000, gt=0)
    min_chunk_size: int = Field(default=100, gt=0)
    overlap_size: int = Field(default=50, ge=0)
    thresholds: QualityThresholds = Field(default_factory=QualityThresholds)

    # Stage retry policy: total attempts per stage, jittered exponential backoff.
    stage_retry_limit: int = Field(default=3, ge=1, le=10)
    backoff_base_seconds: float = Field(default=1.0, ge=0.0)
    backoff_max_seconds: float = Field(default=30.0, ge=0.0)

    # Generation targets.
    session_count: int = Field(default=4, ge=1, le=50)
    activities_per_session: int = Field(default=3, ge=1, le=20)
    retrieval_limit: int = Field(default=8, ge=1, le=100)
    level: CourseLevel = CourseLevel.INTERMEDIATE
    generation_timeout_seconds: float = Field(default=60.0, gt=0.0)

    @model_validator(mode="after")
    def _check_chunk_sizes(self) -> GenerationConfig:
        if self.overlap_size >= self.min_chunk_size:
            raise ValueError("overlap_size must be smaller than min_chunk_size")
        if self.min_chunk_size > self.target_chunk_size:
            raise ValueError("min_chunk_size must not exceed target_chunk_size")
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError("backoff_max_seconds must be >= backoff_base_seconds")
        return self


# ---------------------------------------------------------------------------
# Job snapshot
# ---------------------------------------------------------------------------
class JobErrorDetail(BaseModel):
    """Why a job failed, and where."""

    model_config = ConfigDict(frozen=True)

    kind: str
    stage: GenerationStage | None = None
    message: str
    provider: str | None = None


class GenerationMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    tokens_processed: int = 0
    documents_analyzed: int = 0
    chunks_indexed: int = 0
    concepts_extracted: int = 0
    sessions_generated: int = 0
    average_quality_score: float = Field(default=0.0, ge=0.0, le=100.0)
    # Tokens per second across document_analysis.
    processing_speed: float = 0.0


class GenerationJob(BaseModel):
    """Snapshot of one generation job."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    course_id: str
    status: JobStatus = JobStatus.PENDING
    current_stage: GenerationStage | None = None
    stage_progress: dict[GenerationStage, float] = Field(default_factory=dict)
    overall_progress: float = Field(default=0.0, ge=0.0, le=100.0)
    completed_stages: list[GenerationStage] = Field(default_factory=list)
    # Every stage entry, retries included, in order.
    stage_history: list[GenerationStage] = Field(default_factory=list)
    retry_counts: dict[GenerationStage, int] = Field(default_factory=dict)
    error: JobErrorDetail | None = None
    readiness_score: float | None = Field(default=None, ge=0.0, le=100.0)
    metrics: GenerationMetrics = Field(default_factory=GenerationMetrics)
    message: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def can_pause(self) -> bool:
        return self.status == JobStatus.RUNNING

    @property
    def can_cancel(self) -> bool:
        return self.status.is_active

    @property
    def is_paused(self) -> bool:
        return self.status == JobStatus.PAUSED
