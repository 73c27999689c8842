"""Course input and draft models.

:class:`CourseBrief` is what a caller hands the orchestrator at job start:
the course's declared intent plus its resources.  The pipeline's output is
the :class:`CourseDraft` tree (course → sessions → activities), each node
carrying a quality score assigned by ``structure_generation``.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.models.document import CourseResource


class CourseLevel(str, Enum):  # noqa: UP042
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class ActivityType(str, Enum):  # noqa: UP042
    LESSON = "lesson"
    EXERCISE = "exercise"
    QUIZ = "quiz"
    DISCUSSION = "discussion"
    ASSIGNMENT = "assignment"


class SessionStatus(str, Enum):  # noqa: UP042
    GENERATING = "generating"
    COMPLETED = "completed"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------
class CourseBrief(BaseModel):
    """Course identity, declared learning intent and resources."""

    model_config = ConfigDict(frozen=True)

    course_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = ""
    objectives: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    resources: list[CourseResource] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Drafts
# ---------------------------------------------------------------------------
class ActivityDraft(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ActivityType = ActivityType.LESSON
    title: str
    description: str = ""
    content: str = ""
    duration_minutes: int = Field(default=0, ge=0)
    quality_score: float = Field(default=0.0, ge=0.0, le=100.0)


class SessionOutline(BaseModel):
    """One planned session, as returned by the outline call."""

    model_config = ConfigDict(frozen=True)

    title: str
    description: str = ""
    topics: list[str] = Field(default_factory=list)


class SessionDraft(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    sequence_index: int = Field(ge=0)
    title: str
    description: str = ""
    topics: list[str] = Field(default_factory=list)
    duration_minutes: int = Field(default=0, ge=0)
    activities: list[ActivityDraft] = Field(default_factory=list)
    status: SessionStatus = SessionStatus.COMPLETED
    quality_score: float = Field(default=0.0, ge=0.0, le=100.0)
    # Ids of the RetrievalContexts the session was generated from.
    context_ids: list[str] = Field(default_factory=list)


class CourseDraft(BaseModel):
    """Final artifact handed to the persistence collaborator."""

    model_config = ConfigDict(frozen=True)

    course_id: str
    job_id: str
    title: str
    description: str = ""
    level: CourseLevel = CourseLevel.INTERMEDIATE
    objectives: list[str] = Field(default_factory=list)
    sessions: list[SessionDraft] = Field(default_factory=list)
    estimated_duration_minutes: int = Field(default=0, ge=0)
    topic_coverage: list[str] = Field(default_factory=list)
    source_context_ids: list[str] = Field(default_factory=list)
    quality_score: float = Field(default=0.0, ge=0.0, le=100.0)
