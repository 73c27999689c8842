"""Per-job progress reporting onto the event stream.

One :class:`ProgressTracker` exists per running job.  It turns stage
progress into ``stage_update`` events, mirrors pipeline log lines onto the
stream as ``log`` events, and emits the remaining event kinds (retrieved
context, session previews and the terminal event).

# ─── HOW OVERALL PROGRESS IS COMPUTED ─────────────────────────────────
#
#   overall = (completed stages × 100 + current stage progress) / 4
#
#   document_analysis 50%   →  (0 × 100 + 50) / 4 = 12.5
#   ai_processing 40%       →  (2 × 100 + 40) / 4 = 60.0
#
# Every log() call is written twice: once through structlog (with the job
# context bound by the runner) and once as a ``log`` event for subscribers.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Any

import structlog

from src.models.course import SessionDraft
from src.models.events import EventType, LogCategory, LogLevel
from src.models.pipeline import STAGE_ORDER, GenerationStage
from src.models.rag import KnowledgeGraph, RetrievalContext
from src.pipeline.event_publisher import EventStreamPublisher
from src.utils.logging import get_logger

# Context previews on rag_context events are cut to this many characters.
_PREVIEW_CHARS = 240


def overall_progress(completed_stages: int, stage_progress: float) -> float:
    """Job-level progress (0-100) from completed stages and the current stage's progress."""
    stage_progress = max(0.0, min(100.0, stage_progress))
    value = (completed_stages * 100.0 + stage_progress) / len(STAGE_ORDER)
    return round(max(0.0, min(100.0, value)), 2)


class ProgressTracker:
    """Publishes one job's progress, log lines and results as events."""

    def __init__(self, job_id: str, publisher: EventStreamPublisher) -> None:
        self._job_id = job_id
        self._publisher = publisher
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def stage_update(
        self,
        stage: GenerationStage,
        stage_progress: float,
        completed_stages: int,
        message: str = "",
        status: str = "running",
    ) -> float:
        """Publish a ``stage_update`` event; returns the overall progress."""
        stage_progress = max(0.0, min(100.0, stage_progress))
        overall = overall_progress(completed_stages, stage_progress)
        self._publisher.emit(
            self._job_id,
            EventType.STAGE_UPDATE,
            {
                "stage": stage.value,
                "stage_progress": round(stage_progress, 2),
                "overall_progress": overall,
                "status": status,
                "message": message,
            },
        )
        self._logger.debug(
            "progress_update",
            stage=stage.value,
            stage_progress=round(stage_progress, 1),
            overall_progress=overall,
        )
        return overall

    def log(
        self,
        level: LogLevel,
        category: LogCategory,
        message: str,
        event: str = "pipeline_log",
        **details: Any,
    ) -> None:
        """Write a structured log line and publish it as a ``log`` event."""
        log_method = getattr(self._logger, level.value)
        log_method(event, category=category.value, message=message, **details)
        self._publisher.emit(
            self._job_id,
            EventType.LOG,
            {
                "level": level.value,
                "category": category.value,
                "message": message,
                "details": details,
            },
        )

    def rag_context(
        self,
        query: str,
        contexts: list[RetrievalContext],
        graph: KnowledgeGraph | None = None,
    ) -> None:
        data: dict[str, Any] = {
            "query": query,
            "contexts": [
                {
                    "id": ctx.id,
                    "source_document": ctx.source_document,
                    "chunk_index": ctx.chunk_index,
                    "relevance_score": ctx.relevance_score,
                    "concepts": ctx.extracted_concepts,
                    "preview": ctx.content[:_PREVIEW_CHARS],
                }
                for ctx in contexts
            ],
        }
        if graph is not None:
            data["knowledge_graph"] = graph.model_dump(mode="json")
        self._publisher.emit(self._job_id, EventType.RAG_CONTEXT, data)

    def preview(self, session: SessionDraft, total_sessions: int) -> None:
        self._publisher.emit(
            self._job_id,
            EventType.PREVIEW_UPDATE,
            {
                "session": session.model_dump(mode="json"),
                "generated": session.sequence_index + 1,
                "total": total_sessions,
            },
        )

    def complete(self, status: str, message: str, **data: Any) -> None:
        self._publisher.emit(
            self._job_id,
            EventType.COMPLETE,
            {"status": status, "message": message, **data},
        )

    def error(self, kind: str, stage: GenerationStage | None, message: str) -> None:
        self._publisher.emit(
            self._job_id,
            EventType.ERROR,
            {
                "status": "failed",
                "kind": kind,
                "stage": stage.value if stage else None,
                "message": message,
            },
        )
