"""Runs one generation job through its four stages.

# ─── STAGE FLOW (one JobRunner per job, on its own asyncio.Task) ──────
#
#   pending → running:
#     document_analysis    chunk resources on worker threads, index chunks,
#                          publish the course readiness report
#     content_extraction   hybrid retrieval for every course query, merge by
#                          context id, publish contexts + knowledge graph
#     ai_processing        outline call, then one call per session with the
#                          session's own retrieved context; preview events
#     structure_generation assemble + score the draft tree, persist it
#   → completed | failed | cancelled
#
# Checkpoints (cancel/pause): stage entry, between session calls, while
# paused, before the draft is persisted.  A pause seen between session
# calls throws away the partial stage; the stage reruns after resume.
#
# Retries: TransientServiceError reruns the whole stage, up to
# config.stage_retry_limit attempts, with jittered exponential backoff.
# Anything else fails the job immediately.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from src.interfaces.persistence_provider import IPersistenceProvider
from src.models.course import CourseBrief, SessionDraft
from src.models.events import LogCategory, LogLevel
from src.models.pipeline import (
    STAGE_ORDER,
    GenerationConfig,
    GenerationJob,
    GenerationStage,
    JobErrorDetail,
    JobStatus,
)
from src.models.rag import Chunk, RetrievalContext, RetrievalScope
from src.pipeline.job_control import JobControl
from src.pipeline.progress_tracker import ProgressTracker, overall_progress
from src.services.course_assembler import CourseAssembler
from src.services.generation_service import GenerationService
from src.services.index_client import IndexClient, collection_name
from src.services.ingestion.chunker import TextChunker, document_quality, topic_coverage
from src.services.ingestion.quality_scorer import analyze_resource_quality
from src.services.retrieval import (
    HybridRetrievalEngine,
    build_course_queries,
    build_knowledge_graph,
    merge_contexts,
)
from src.utils.concurrency import gather_in_threads
from src.utils.errors import (
    CourseForgeError,
    JobCancelled,
    TransientServiceError,
    ValidationError,
)
from src.utils.logging import bind_job_context, clear_job_context, get_logger

# Session retrieval query uses the title plus this many of its topics.
_SESSION_QUERY_TOPICS = 3

_STAGE_CATEGORY = {
    GenerationStage.DOCUMENT_ANALYSIS: LogCategory.PROCESSING,
    GenerationStage.CONTENT_EXTRACTION: LogCategory.RAG,
    GenerationStage.AI_PROCESSING: LogCategory.AI,
    GenerationStage.STRUCTURE_GENERATION: LogCategory.PROCESSING,
}


@dataclass
class PipelineDependencies:
    """Stateless collaborators shared by every job (built in ``main._build_all``)."""

    chunker: TextChunker
    index_client: IndexClient
    retriever: HybridRetrievalEngine
    generator: GenerationService
    assembler: CourseAssembler
    persistence: IPersistenceProvider
    collection_prefix: str = "course"
    max_concurrent_chunking: int = 4


class _StagePaused(Exception):
    """A pause observed inside a stage; the partial stage is discarded."""


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class JobRunner:
    """Drives a single :class:`GenerationJob` from ``pending`` to a terminal state.

    Parameters
    ----------
    job:
        The initial ``pending`` snapshot.
    course:
        Course identity, intent and resources.
    config:
        Chunking, retry and generation settings for this job.
    deps:
        Shared pipeline collaborators.
    tracker:
        Publishes this job's events.
    control:
        Cancel/pause flags set by the orchestrator.
    on_update:
        Called synchronously with every new snapshot.
    """

    def __init__(
        self,
        job: GenerationJob,
        course: CourseBrief,
        config: GenerationConfig,
        deps: PipelineDependencies,
        tracker: ProgressTracker,
        control: JobControl,
        on_update: Callable[[GenerationJob], None] | None = None,
    ) -> None:
        self._job = job
        self._course = course
        self._config = config
        self._deps = deps
        self._tracker = tracker
        self._control = control
        self._on_update = on_update
        self._logger: structlog.BoundLogger = get_logger(__name__)

        self._scope = RetrievalScope(
            course_id=course.course_id,
            collection=collection_name(course.course_id, deps.collection_prefix),
            document_order={r.resource_id: i for i, r in enumerate(course.resources)},
        )
        # Stage outputs, replaced wholesale when a stage attempt succeeds.
        self._chunks: list[Chunk] = []
        self._contexts: dict[str, RetrievalContext] = {}
        self._sessions: list[SessionDraft] = []
        self._draft_score = 0.0
        self._draft_minutes = 0

    @property
    def job(self) -> GenerationJob:
        return self._job

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self) -> GenerationJob:
        """Run every stage; always returns the terminal snapshot."""
        bind_job_context(self._job.job_id, self._job.course_id)
        try:
            await self._transition(status=JobStatus.RUNNING, message="Generation started")
            self._tracker.log(
                LogLevel.INFO, LogCategory.SYSTEM, "Generation started", event="job_started"
            )

            index = 0
            while index < len(STAGE_ORDER):
                stage = STAGE_ORDER[index]
                await self._checkpoint(stage)
                try:
                    await self._run_stage(stage)
                except _StagePaused:
                    continue
                index += 1

            await self._finish_completed()
        except JobCancelled:
            await self._finish_cancelled()
        except asyncio.CancelledError:
            # Application shutdown: record the outcome without awaiting anything.
            self._finish_cancelled_sync("Generation cancelled by shutdown")
            raise
        except CourseForgeError as exc:
            await self._finish_failed(exc.kind, exc.message, exc.provider_name)
        except Exception as exc:
            self._logger.exception("job_unexpected_error", error=str(exc))
            await self._finish_failed(type(exc).__name__, str(exc) or type(exc).__name__, None)
        finally:
            clear_job_context()
        return self._job

    # ------------------------------------------------------------------
    # Stage execution and retries
    # ------------------------------------------------------------------

    async def _run_stage(self, stage: GenerationStage) -> None:
        config = self._config
        category = _STAGE_CATEGORY[stage]

        def _before_retry(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            retries = dict(self._job.retry_counts)
            retries[stage] = retries.get(stage, 0) + 1
            self._set(retry_counts=retries)
            self._tracker.log(
                LogLevel.WARNING,
                category,
                f"{stage.value} attempt {state.attempt_number} failed, retrying: {exc}",
                event="stage_retry",
                stage=stage.value,
                attempt=state.attempt_number,
                max_attempts=config.stage_retry_limit,
                error_kind=type(exc).__name__ if exc else None,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(config.stage_retry_limit),
            wait=wait_exponential_jitter(
                initial=config.backoff_base_seconds,
                max=config.backoff_max_seconds,
                jitter=config.backoff_base_seconds,
            ),
            retry=retry_if_exception_type(TransientServiceError),
            before_sleep=_before_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self._enter_stage(stage)
                await self._stage_handler(stage)()
        await self._complete_stage(stage)

    def _stage_handler(self, stage: GenerationStage) -> Callable[[], Any]:
        return {
            GenerationStage.DOCUMENT_ANALYSIS: self._document_analysis,
            GenerationStage.CONTENT_EXTRACTION: self._content_extraction,
            GenerationStage.AI_PROCESSING: self._ai_processing,
            GenerationStage.STRUCTURE_GENERATION: self._structure_generation,
        }[stage]

    async def _enter_stage(self, stage: GenerationStage) -> None:
        # Retries re-enter here; a cancel during the backoff ends the job.
        self._control.raise_if_cancelled()
        progress = dict(self._job.stage_progress)
        progress[stage] = 0.0
        await self._transition(
            current_stage=stage,
            stage_progress=progress,
            stage_history=[*self._job.stage_history, stage],
            message=f"Running {stage.value}",
        )
        self._logger.info("stage_start", stage=stage.value)
        self._progress(stage, 0.0, f"Starting {stage.value}")

    async def _complete_stage(self, stage: GenerationStage) -> None:
        progress = dict(self._job.stage_progress)
        progress[stage] = 100.0
        completed = [*self._job.completed_stages, stage]
        await self._transition(
            stage_progress=progress,
            completed_stages=completed,
            overall_progress=overall_progress(len(completed), 0.0),
            message=f"Finished {stage.value}",
        )
        self._tracker.stage_update(
            stage, 100.0, len(completed) - 1, f"Finished {stage.value}", status="completed"
        )
        self._logger.info("stage_complete", stage=stage.value)

    def _progress(self, stage: GenerationStage, value: float, message: str) -> None:
        completed = len(self._job.completed_stages)
        overall = self._tracker.stage_update(stage, value, completed, message)
        progress = dict(self._job.stage_progress)
        progress[stage] = max(0.0, min(100.0, value))
        self._set(stage_progress=progress, overall_progress=overall, message=message)

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    async def _checkpoint(self, stage: GenerationStage) -> None:
        """Stage-entry checkpoint: honour cancel, park while paused."""
        self._control.raise_if_cancelled()
        if not self._control.pause_requested:
            return

        await self._transition(status=JobStatus.PAUSED, message=f"Paused before {stage.value}")
        self._tracker.stage_update(
            stage,
            self._job.stage_progress.get(stage, 0.0),
            len(self._job.completed_stages),
            f"Paused before {stage.value}",
            status="paused",
        )
        self._tracker.log(LogLevel.INFO, LogCategory.SYSTEM, "Job paused", event="job_paused", stage=stage.value)

        await self._control.wait_while_paused()

        await self._transition(status=JobStatus.RUNNING, message=f"Resumed at {stage.value}")
        self._tracker.log(LogLevel.INFO, LogCategory.SYSTEM, "Job resumed", event="job_resumed", stage=stage.value)

    def _in_stage_checkpoint(self, stage: GenerationStage) -> None:
        self._control.raise_if_cancelled()
        if self._control.pause_requested:
            self._tracker.log(
                LogLevel.INFO,
                LogCategory.SYSTEM,
                f"Pause requested during {stage.value}; partial work discarded",
                event="stage_abandoned_for_pause",
                stage=stage.value,
            )
            raise _StagePaused()

    # ------------------------------------------------------------------
    # Stage 1: document_analysis
    # ------------------------------------------------------------------

    async def _document_analysis(self) -> None:
        stage = GenerationStage.DOCUMENT_ANALYSIS
        course = self._course
        if not course.resources:
            raise ValidationError(message=f"Course {course.course_id} has no resources")

        started = time.monotonic()
        pending = sorted(
            (r for r in course.resources if not r.chunked),
            key=lambda r: r.resource_id,
        )
        self._progress(stage, 5.0, f"Chunking {len(pending)} resources")

        results = await gather_in_threads(
            self._deps.chunker.chunk,
            [(r.document, self._config) for r in pending],
            max_concurrency=self._deps.max_concurrent_chunking,
        )
        chunked = dict(zip((r.resource_id for r in pending), results))
        self._progress(stage, 50.0, "Chunking finished, indexing")

        all_chunks: list[Chunk] = []
        scored: list[tuple[float, int]] = []
        minimum = self._config.thresholds.minimum
        for position, resource_id in enumerate(sorted(chunked), start=1):
            chunks = chunked[resource_id]
            await self._deps.index_client.index(self._scope.collection, chunks)

            score = document_quality(chunks)
            tokens = sum(c.token_count - c.overlap_tokens for c in chunks)
            scored.append((score, tokens))
            all_chunks.extend(chunks)
            await self._save_resource_record(resource_id, score, len(chunks), tokens)

            weak = [c for c in chunks if c.quality_score < minimum]
            if weak:
                self._tracker.log(
                    LogLevel.WARNING,
                    LogCategory.PROCESSING,
                    f"{len(weak)} of {len(chunks)} chunks in {resource_id} scored below {minimum}",
                    event="quality_warning",
                    document_id=resource_id,
                    chunk_ids=[c.id for c in weak],
                )
            self._progress(stage, 50.0 + 40.0 * position / len(chunked), f"Indexed {resource_id}")

        for resource in course.resources:
            if resource.chunked and resource.quality_score is not None:
                scored.append((resource.quality_score, resource.token_count))

        report = analyze_resource_quality(scored, self._config.thresholds, topic_coverage(all_chunks))
        elapsed = max(time.monotonic() - started, 1e-6)
        total_tokens = sum(tokens for _, tokens in scored)

        self._chunks = all_chunks
        self._set(
            readiness_score=report.readiness_score,
            metrics=self._job.metrics.model_copy(
                update={
                    "tokens_processed": total_tokens,
                    "documents_analyzed": len(course.resources),
                    "chunks_indexed": len(all_chunks),
                    "average_quality_score": report.average_score,
                    "processing_speed": round(sum(c.token_count for c in all_chunks) / elapsed, 2),
                }
            ),
        )
        self._tracker.log(
            LogLevel.INFO,
            LogCategory.PROCESSING,
            f"Course readiness {report.readiness_score:.1f} ({report.readiness_band.value})",
            event="readiness_report",
            readiness=report.model_dump(mode="json"),
        )

    # ------------------------------------------------------------------
    # Stage 2: content_extraction
    # ------------------------------------------------------------------

    async def _content_extraction(self) -> None:
        stage = GenerationStage.CONTENT_EXTRACTION
        queries = build_course_queries(self._course)
        batches: list[list[RetrievalContext]] = []
        for position, query in enumerate(queries, start=1):
            contexts = await self._deps.retriever.retrieve(
                query, self._scope, self._config.retrieval_limit
            )
            batches.append(contexts)
            self._tracker.rag_context(query, contexts)
            self._progress(stage, 90.0 * position / len(queries), f"Retrieved context for '{query}'")

        merged = merge_contexts(batches)
        graph = build_knowledge_graph(merged)
        concepts = sum(1 for node in graph.nodes if node.type.value == "concept")
        self._tracker.rag_context("course", merged, graph)
        if not merged:
            self._tracker.log(
                LogLevel.WARNING,
                LogCategory.RAG,
                "No relevant context found for any course query",
                event="retrieval_empty",
            )

        self._contexts = {ctx.id: ctx for ctx in merged}
        self._set(
            metrics=self._job.metrics.model_copy(update={"concepts_extracted": concepts})
        )
        self._tracker.log(
            LogLevel.INFO,
            LogCategory.RAG,
            f"Collected {len(merged)} contexts from {len(queries)} queries",
            event="contexts_merged",
            contexts=len(merged),
            concepts=concepts,
        )

    # ------------------------------------------------------------------
    # Stage 3: ai_processing
    # ------------------------------------------------------------------

    async def _ai_processing(self) -> None:
        stage = GenerationStage.AI_PROCESSING
        config = self._config
        top_contexts = list(self._contexts.values())[: config.retrieval_limit]

        outlines = await self._deps.generator.generate_outline(self._course, config, top_contexts)
        self._progress(stage, 10.0, f"Outline ready with {len(outlines)} sessions")

        drafts: list[SessionDraft] = []
        for index, outline in enumerate(outlines):
            self._in_stage_checkpoint(stage)

            query = " ".join([outline.title, *outline.topics[:_SESSION_QUERY_TOPICS]])
            session_contexts = await self._deps.retriever.retrieve(
                query, self._scope, config.retrieval_limit
            )
            for ctx in session_contexts:
                self._contexts.setdefault(ctx.id, ctx)

            draft = await self._deps.generator.generate_session(
                self._course, outline, index, config, session_contexts
            )
            drafts.append(draft)
            self._tracker.preview(draft, len(outlines))
            self._progress(
                stage,
                10.0 + 90.0 * (index + 1) / len(outlines),
                f"Generated session {index + 1} of {len(outlines)}",
            )

        self._sessions = drafts
        self._set(
            metrics=self._job.metrics.model_copy(update={"sessions_generated": len(drafts)})
        )

    # ------------------------------------------------------------------
    # Stage 4: structure_generation
    # ------------------------------------------------------------------

    async def _structure_generation(self) -> None:
        stage = GenerationStage.STRUCTURE_GENERATION
        result = self._deps.assembler.assemble(
            self._job.job_id, self._course, self._config, self._sessions, self._contexts
        )
        self._progress(stage, 60.0, "Course structure assembled")

        for warning in result.warnings:
            self._tracker.log(
                LogLevel.WARNING,
                LogCategory.PROCESSING,
                warning.message,
                event="quality_warning",
                subject_id=warning.subject_id,
                score=warning.score,
            )

        self._control.raise_if_cancelled()
        await self._deps.persistence.save_course_draft(result.draft)
        self._progress(stage, 95.0, "Course draft saved")
        self._draft_score = result.draft.quality_score
        self._draft_minutes = result.draft.estimated_duration_minutes

    # ------------------------------------------------------------------
    # Terminal states
    # ------------------------------------------------------------------

    async def _finish_completed(self) -> None:
        await self._transition(
            status=JobStatus.COMPLETED,
            current_stage=None,
            overall_progress=100.0,
            message="Course generation completed",
        )
        self._logger.info("job_completed", sessions=len(self._sessions))
        self._tracker.complete(
            JobStatus.COMPLETED.value,
            "Course generation completed",
            course_id=self._course.course_id,
            sessions=len(self._sessions),
            quality_score=self._draft_score,
            estimated_duration_minutes=self._draft_minutes,
            readiness_score=self._job.readiness_score,
        )

    async def _finish_cancelled(self) -> None:
        self._logger.info("job_cancelled", stage=self._stage_value())
        await self._transition(status=JobStatus.CANCELLED, message="Generation cancelled")
        self._tracker.complete(
            JobStatus.CANCELLED.value,
            "Generation cancelled",
            stage=self._stage_value(),
        )

    def _finish_cancelled_sync(self, message: str) -> None:
        self._logger.info("job_cancelled", stage=self._stage_value(), reason="shutdown")
        self._set(status=JobStatus.CANCELLED, message=message)
        self._tracker.complete(JobStatus.CANCELLED.value, message, stage=self._stage_value())

    async def _finish_failed(self, kind: str, message: str, provider: str | None) -> None:
        stage = self._job.current_stage
        self._logger.error("job_failed", stage=self._stage_value(), kind=kind, error=message)
        await self._transition(
            status=JobStatus.FAILED,
            error=JobErrorDetail(kind=kind, stage=stage, message=message, provider=provider),
            message=f"Generation failed: {message}",
        )
        self._tracker.error(kind, stage, message)

    def _stage_value(self) -> str | None:
        return self._job.current_stage.value if self._job.current_stage else None

    # ------------------------------------------------------------------
    # Snapshot handling
    # ------------------------------------------------------------------

    def _set(self, **updates: Any) -> GenerationJob:
        updates["updated_at"] = _utcnow()
        self._job = self._job.model_copy(update=updates)
        if self._on_update is not None:
            self._on_update(self._job)
        return self._job

    async def _transition(self, **updates: Any) -> GenerationJob:
        """Apply *updates* and persist the snapshot (persistence failures are logged)."""
        job = self._set(**updates)
        try:
            await self._deps.persistence.save_job(job)
        except Exception as exc:
            self._logger.warning("job_persist_failed", error=str(exc))
        return job

    async def _save_resource_record(
        self, document_id: str, score: float, chunk_count: int, tokens: int
    ) -> None:
        try:
            await self._deps.persistence.save_resource_record(
                self._course.course_id, document_id, score, chunk_count, tokens
            )
        except Exception as exc:
            self._logger.warning("resource_persist_failed", document_id=document_id, error=str(exc))
