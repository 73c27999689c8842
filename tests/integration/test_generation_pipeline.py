"""Integration tests: full generation jobs through the orchestrator with in-memory providers.

Every collaborator is real except the external services (embedding, vector
store, model, persistence), which are the fakes from ``tests/conftest.py``.
"""

from __future__ import annotations

import asyncio

import pytest

from src.models.document import CourseResource, Document
from src.models.events import EventType, PipelineEvent
from src.models.pipeline import STAGE_ORDER, GenerationConfig, GenerationStage, JobStatus
from src.pipeline.event_publisher import EventStreamPublisher
from src.pipeline.job_runner import PipelineDependencies
from src.pipeline.orchestrator import GenerationOrchestrator
from src.utils.errors import JobAlreadyRunningError, JobNotFoundError, PipelineError, ServiceTimeoutError
from tests.conftest import (
    SAMPLE_DOCUMENTS,
    InMemoryVectorStore,
    MemoryPersistence,
    ScriptedLLM,
    make_course,
)

_TIMEOUT = 20.0


@pytest.fixture
def orchestrator(pipeline_deps: PipelineDependencies, generation_config: GenerationConfig) -> GenerationOrchestrator:
    return GenerationOrchestrator(
        deps=pipeline_deps,
        publisher=EventStreamPublisher(buffer_size=4096),
        default_config=generation_config,
    )


async def _collect(orchestrator: GenerationOrchestrator, job_id: str) -> list[PipelineEvent]:
    subscription = orchestrator.publisher.subscribe(job_id)

    async def _read() -> list[PipelineEvent]:
        return [event async for event in subscription]

    return await asyncio.wait_for(_read(), timeout=_TIMEOUT)


async def _wait_for_status(orchestrator: GenerationOrchestrator, job_id: str, status: JobStatus) -> None:
    for _ in range(int(_TIMEOUT * 100)):
        if orchestrator.status(job_id).status == status:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"job never reached {status.value}")


def _stages_in_order(events: list[PipelineEvent]) -> list[str]:
    stages: list[str] = []
    for event in events:
        if event.type == EventType.STAGE_UPDATE and (not stages or stages[-1] != event.data["stage"]):
            stages.append(event.data["stage"])
    return stages


def _logs(events: list[PipelineEvent], level: str, category: str) -> list[PipelineEvent]:
    return [
        e
        for e in events
        if e.type == EventType.LOG and e.data["level"] == level and e.data["category"] == category
    ]


# ======================================================================
# Happy path
# ======================================================================


class TestCompletedJob:
    @pytest.mark.asyncio
    async def test_stages_events_and_draft(
        self, orchestrator: GenerationOrchestrator, persistence: MemoryPersistence
    ) -> None:
        job_id = orchestrator.start(make_course())
        events = await _collect(orchestrator, job_id)
        job = await orchestrator.wait(job_id)

        assert job.status == JobStatus.COMPLETED
        assert job.overall_progress == 100.0
        assert job.completed_stages == list(STAGE_ORDER)
        assert job.stage_history == list(STAGE_ORDER)
        assert job.retry_counts == {}
        assert job.error is None

        assert _stages_in_order(events) == [stage.value for stage in STAGE_ORDER]
        terminal = [e for e in events if e.is_terminal]
        assert len(terminal) == 1
        assert events[-1] is terminal[0]
        assert events[-1].type == EventType.COMPLETE
        assert events[-1].data["status"] == "completed"
        assert [e.sequence for e in events] == list(range(1, len(events) + 1))

        assert len(persistence.drafts) == 1
        draft = persistence.drafts[0]
        assert draft.job_id == job_id
        assert len(draft.sessions) == 2
        assert draft.estimated_duration_minutes > 0

    @pytest.mark.asyncio
    async def test_progress_never_decreases(self, orchestrator: GenerationOrchestrator) -> None:
        job_id = orchestrator.start(make_course())
        events = await _collect(orchestrator, job_id)

        overall = [e.data["overall_progress"] for e in events if e.type == EventType.STAGE_UPDATE]
        assert overall == sorted(overall)
        assert all(0.0 <= p <= 100.0 for p in overall)

    @pytest.mark.asyncio
    async def test_readiness_metrics_and_resource_records(
        self, orchestrator: GenerationOrchestrator, persistence: MemoryPersistence
    ) -> None:
        job_id = orchestrator.start(make_course())
        events = await _collect(orchestrator, job_id)
        job = await orchestrator.wait(job_id)

        assert job.readiness_score is not None
        assert job.metrics.documents_analyzed == 2
        assert job.metrics.chunks_indexed > 2
        assert job.metrics.sessions_generated == 2
        assert sorted(r[1] for r in persistence.resources) == sorted(SAMPLE_DOCUMENTS)

        rag_events = [e for e in events if e.type == EventType.RAG_CONTEXT]
        assert any("knowledge_graph" in e.data for e in rag_events)
        previews = [e for e in events if e.type == EventType.PREVIEW_UPDATE]
        assert [p.data["generated"] for p in previews] == [1, 2]

    @pytest.mark.asyncio
    async def test_snapshots_persisted_through_lifecycle(
        self, orchestrator: GenerationOrchestrator, persistence: MemoryPersistence
    ) -> None:
        job_id = orchestrator.start(make_course())
        await orchestrator.wait(job_id)

        statuses = [j.status for j in persistence.job_history if j.job_id == job_id]
        assert statuses[0] == JobStatus.RUNNING
        assert statuses[-1] == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_persistence_failure_does_not_fail_job(
        self, orchestrator: GenerationOrchestrator, persistence: MemoryPersistence
    ) -> None:
        persistence.fail_jobs = True
        job_id = orchestrator.start(make_course())
        job = await orchestrator.wait(job_id)
        assert job.status == JobStatus.COMPLETED


# ======================================================================
# Retries and failures
# ======================================================================


class TestRetriesAndFailures:
    @pytest.mark.asyncio
    async def test_transient_failures_retried_then_complete(
        self, orchestrator: GenerationOrchestrator, llm: ScriptedLLM
    ) -> None:
        llm.script = [ServiceTimeoutError(), ServiceTimeoutError()]

        job_id = orchestrator.start(make_course())
        events = await _collect(orchestrator, job_id)
        job = await orchestrator.wait(job_id)

        assert job.status == JobStatus.COMPLETED
        assert job.retry_counts == {GenerationStage.AI_PROCESSING: 2}
        assert job.stage_history.count(GenerationStage.AI_PROCESSING) == 3

        warnings = _logs(events, "warning", "ai")
        assert len(warnings) == 2
        assert all(w.data["details"]["stage"] == "ai_processing" for w in warnings)
        assert events[-1].type == EventType.COMPLETE
        assert max(w.sequence for w in warnings) < events[-1].sequence

    @pytest.mark.asyncio
    async def test_retry_budget_exhausted_fails_job(
        self, orchestrator: GenerationOrchestrator, llm: ScriptedLLM
    ) -> None:
        llm.script = [ServiceTimeoutError(provider_name="scripted")] * 3

        job_id = orchestrator.start(make_course())
        events = await _collect(orchestrator, job_id)
        job = await orchestrator.wait(job_id)

        assert job.status == JobStatus.FAILED
        assert job.error is not None
        assert job.error.kind == "ServiceTimeoutError"
        assert job.error.stage == GenerationStage.AI_PROCESSING
        assert job.error.provider == "scripted"
        assert job.retry_counts[GenerationStage.AI_PROCESSING] == 2
        assert events[-1].type == EventType.ERROR
        assert events[-1].data["kind"] == "ServiceTimeoutError"

    @pytest.mark.asyncio
    async def test_non_transient_failure_is_not_retried(
        self, orchestrator: GenerationOrchestrator, llm: ScriptedLLM, persistence: MemoryPersistence
    ) -> None:
        llm.script = ["this is not json"]

        job_id = orchestrator.start(make_course())
        job = await orchestrator.wait(job_id)

        assert job.status == JobStatus.FAILED
        assert job.error is not None and job.error.kind == "LLMError"
        assert job.retry_counts == {}
        assert job.stage_history.count(GenerationStage.AI_PROCESSING) == 1
        assert persistence.drafts == []

    @pytest.mark.asyncio
    async def test_course_without_resources_fails_validation(
        self, orchestrator: GenerationOrchestrator
    ) -> None:
        job_id = orchestrator.start(make_course(documents={}))
        events = await _collect(orchestrator, job_id)
        job = await orchestrator.wait(job_id)

        assert job.status == JobStatus.FAILED
        assert job.error is not None
        assert job.error.kind == "ValidationError"
        assert job.error.stage == GenerationStage.DOCUMENT_ANALYSIS
        assert [e for e in events if e.is_terminal] == [events[-1]]

    @pytest.mark.asyncio
    async def test_unreachable_index_fails_retrieval(
        self, orchestrator: GenerationOrchestrator, vector_store: InMemoryVectorStore
    ) -> None:
        resources = [
            CourseResource(
                document=Document(id=doc_id, text=text),
                chunked=True,
                quality_score=72.0,
                chunk_count=3,
                token_count=100,
            )
            for doc_id, text in SAMPLE_DOCUMENTS.items()
        ]
        vector_store.fail_with = RuntimeError("connection refused")

        job_id = orchestrator.start(make_course(resources=resources))
        job = await orchestrator.wait(job_id)

        assert job.status == JobStatus.FAILED
        assert job.error is not None
        assert job.error.kind == "RetrievalUnavailableError"
        assert job.error.stage == GenerationStage.CONTENT_EXTRACTION
        # Already-chunked resources still count toward readiness.
        assert job.readiness_score == 72.0


# ======================================================================
# Cancel, pause and resume
# ======================================================================


class TestJobControl:
    @pytest.mark.asyncio
    async def test_cancel_during_generation(
        self,
        orchestrator: GenerationOrchestrator,
        llm: ScriptedLLM,
        persistence: MemoryPersistence,
    ) -> None:
        holder: dict[str, str] = {}
        llm.on_session = lambda index: orchestrator.cancel(holder["job_id"]) if index == 0 else None

        holder["job_id"] = job_id = orchestrator.start(make_course())
        events = await _collect(orchestrator, job_id)
        job = await orchestrator.wait(job_id)

        assert job.status == JobStatus.CANCELLED
        assert GenerationStage.AI_PROCESSING not in job.completed_stages
        assert persistence.drafts == []
        assert events[-1].type == EventType.COMPLETE
        assert events[-1].data["status"] == "cancelled"
        assert events[-1].data["stage"] == "ai_processing"

    @pytest.mark.asyncio
    async def test_cancel_before_retry_stops_stage(
        self,
        orchestrator: GenerationOrchestrator,
        llm: ScriptedLLM,
        persistence: MemoryPersistence,
    ) -> None:
        holder: dict[str, str] = {}

        def _cancel_then_time_out(system_prompt: str, user_prompt: str) -> str:
            orchestrator.cancel(holder["job_id"])
            raise ServiceTimeoutError(provider_name="scripted")

        llm.script = [_cancel_then_time_out]

        holder["job_id"] = job_id = orchestrator.start(make_course())
        events = await _collect(orchestrator, job_id)
        job = await orchestrator.wait(job_id)

        assert job.status == JobStatus.CANCELLED
        assert len(llm.calls) == 1
        assert job.stage_history.count(GenerationStage.AI_PROCESSING) == 1
        assert persistence.drafts == []
        assert events[-1].data["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_pause_discards_stage_and_resume_reruns_it(
        self, orchestrator: GenerationOrchestrator, llm: ScriptedLLM
    ) -> None:
        holder: dict[str, str] = {}
        paused: list[bool] = []

        def _pause_once(index: int) -> None:
            if index == 0 and not paused:
                paused.append(True)
                orchestrator.pause(holder["job_id"])

        llm.on_session = _pause_once
        holder["job_id"] = job_id = orchestrator.start(make_course())
        collector = asyncio.create_task(_collect(orchestrator, job_id))

        await _wait_for_status(orchestrator, job_id, JobStatus.PAUSED)
        snapshot = orchestrator.status(job_id)
        assert snapshot.is_paused
        assert snapshot.current_stage == GenerationStage.AI_PROCESSING

        orchestrator.resume(job_id)
        events = await collector
        job = await orchestrator.wait(job_id)

        assert job.status == JobStatus.COMPLETED
        assert job.stage_history.count(GenerationStage.AI_PROCESSING) == 2
        assert job.retry_counts == {}
        assert any(
            e.type == EventType.STAGE_UPDATE and e.data["status"] == "paused" for e in events
        )
        assert any(e.type == EventType.LOG and e.data["message"] == "Job resumed" for e in events)

    @pytest.mark.asyncio
    async def test_cancel_while_paused(self, orchestrator: GenerationOrchestrator, llm: ScriptedLLM) -> None:
        holder: dict[str, str] = {}
        llm.on_session = lambda index: orchestrator.pause(holder["job_id"]) if index == 0 else None

        holder["job_id"] = job_id = orchestrator.start(make_course())
        await _wait_for_status(orchestrator, job_id, JobStatus.PAUSED)

        orchestrator.cancel(job_id)
        job = await orchestrator.wait(job_id)

        assert job.status == JobStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_control_errors(self, orchestrator: GenerationOrchestrator) -> None:
        with pytest.raises(JobNotFoundError):
            orchestrator.status("missing")

        job_id = orchestrator.start(make_course())
        with pytest.raises(PipelineError):
            orchestrator.resume(job_id)
        orchestrator.pause(job_id)
        with pytest.raises(PipelineError):
            orchestrator.pause(job_id)
        orchestrator.resume(job_id)

        job = await orchestrator.wait(job_id)
        assert job.status == JobStatus.COMPLETED
        with pytest.raises(PipelineError):
            orchestrator.cancel(job_id)

    @pytest.mark.asyncio
    async def test_shutdown_cancels_running_jobs(
        self, orchestrator: GenerationOrchestrator, llm: ScriptedLLM
    ) -> None:
        llm.delay = 30.0
        job_id = orchestrator.start(make_course())
        for _ in range(int(_TIMEOUT * 100)):
            if orchestrator.status(job_id).current_stage == GenerationStage.AI_PROCESSING:
                break
            await asyncio.sleep(0.01)

        await asyncio.wait_for(orchestrator.shutdown(), timeout=_TIMEOUT)

        assert orchestrator.status(job_id).status == JobStatus.CANCELLED
        assert orchestrator.active_jobs() == []


# ======================================================================
# Course lock and subscriptions
# ======================================================================


class TestCourseLock:
    @pytest.mark.asyncio
    async def test_second_start_rejected_without_record(
        self, orchestrator: GenerationOrchestrator, persistence: MemoryPersistence
    ) -> None:
        course = make_course()
        first = orchestrator.start(course)

        with pytest.raises(JobAlreadyRunningError) as exc_info:
            orchestrator.start(course)
        assert exc_info.value.job_id == first
        assert [j.job_id for j in orchestrator.active_jobs()] == [first]

        await orchestrator.wait(first)
        assert {j.job_id for j in persistence.job_history} == {first}

    @pytest.mark.asyncio
    async def test_lock_released_after_terminal_state(self, orchestrator: GenerationOrchestrator) -> None:
        course = make_course()
        first = orchestrator.start(course)
        await orchestrator.wait(first)

        second = orchestrator.start(course)
        assert second != first
        assert (await orchestrator.wait(second)).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_other_courses_run_concurrently(self, orchestrator: GenerationOrchestrator) -> None:
        a = orchestrator.start(make_course("course-a"))
        b = orchestrator.start(make_course("course-b"))

        jobs = await asyncio.gather(orchestrator.wait(a), orchestrator.wait(b))
        assert [j.status for j in jobs] == [JobStatus.COMPLETED, JobStatus.COMPLETED]

    @pytest.mark.asyncio
    async def test_subscription_after_finish_is_empty(self, orchestrator: GenerationOrchestrator) -> None:
        job_id = orchestrator.start(make_course())
        await orchestrator.wait(job_id)

        assert await _collect(orchestrator, job_id) == []
        assert orchestrator.status(job_id).status == JobStatus.COMPLETED
