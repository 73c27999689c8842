"""Events published on a job's event stream."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):  # noqa: UP042
    STAGE_UPDATE = "stage_update"
    LOG = "log"
    RAG_CONTEXT = "rag_context"
    PREVIEW_UPDATE = "preview_update"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        """Terminal events are never dropped on buffer overflow."""
        return self in (EventType.COMPLETE, EventType.ERROR)


class LogLevel(str, Enum):  # noqa: UP042
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogCategory(str, Enum):  # noqa: UP042
    SYSTEM = "system"
    RAG = "rag"
    AI = "ai"
    PROCESSING = "processing"


class PipelineEvent(BaseModel):
    """One event on a job's stream.

    ``sequence`` increases by one per published event for the job, so a
    subscriber can tell from gaps that events were dropped for it.
    """

    model_config = ConfigDict(frozen=True)

    job_id: str
    type: EventType
    sequence: int = 0
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )

    @property
    def is_terminal(self) -> bool:
        return self.type.is_terminal
