"""Unit tests for JobControl flags and ProgressTracker event emission."""

from __future__ import annotations

import asyncio

import pytest

from src.models.events import EventType, LogCategory, LogLevel
from src.models.pipeline import GenerationStage
from src.pipeline.event_publisher import EventStreamPublisher
from src.pipeline.job_control import JobControl
from src.pipeline.progress_tracker import ProgressTracker, overall_progress
from src.utils.errors import JobCancelled


class TestJobControl:
    def test_initial_state(self) -> None:
        control = JobControl()
        assert not control.cancel_requested
        assert not control.pause_requested
        control.raise_if_cancelled()

    def test_cancel_raises_at_checkpoint(self) -> None:
        control = JobControl()
        control.request_cancel()
        with pytest.raises(JobCancelled):
            control.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_wait_returns_immediately_when_not_paused(self) -> None:
        await asyncio.wait_for(JobControl().wait_while_paused(), timeout=0.5)

    @pytest.mark.asyncio
    async def test_wait_blocks_until_resumed(self) -> None:
        control = JobControl()
        control.request_pause()

        waiter = asyncio.create_task(control.wait_while_paused())
        await asyncio.sleep(0.01)
        assert not waiter.done()

        control.request_resume()
        await asyncio.wait_for(waiter, timeout=0.5)
        assert not control.pause_requested

    @pytest.mark.asyncio
    async def test_cancel_while_paused_raises(self) -> None:
        control = JobControl()
        control.request_pause()

        waiter = asyncio.create_task(control.wait_while_paused())
        await asyncio.sleep(0.01)
        control.request_cancel()

        with pytest.raises(JobCancelled):
            await asyncio.wait_for(waiter, timeout=0.5)


class TestOverallProgress:
    @pytest.mark.parametrize(
        ("completed", "stage_progress", "expected"),
        [
            (0, 0.0, 0.0),
            (0, 50.0, 12.5),
            (2, 40.0, 60.0),
            (3, 100.0, 100.0),
            (4, 0.0, 100.0),
        ],
    )
    def test_formula(self, completed: int, stage_progress: float, expected: float) -> None:
        assert overall_progress(completed, stage_progress) == expected

    def test_stage_progress_clamped(self) -> None:
        assert overall_progress(1, 250.0) == 50.0
        assert overall_progress(1, -10.0) == 25.0


class TestProgressTracker:
    @pytest.fixture()
    def publisher(self) -> EventStreamPublisher:
        return EventStreamPublisher()

    def test_stage_update_event(self, publisher: EventStreamPublisher) -> None:
        subscription = publisher.subscribe("job")
        tracker = ProgressTracker("job", publisher)

        overall = tracker.stage_update(GenerationStage.AI_PROCESSING, 40.0, 2, "Generating")

        assert overall == 60.0
        (event,) = subscription.pending()
        assert event.type == EventType.STAGE_UPDATE
        assert event.data == {
            "stage": "ai_processing",
            "stage_progress": 40.0,
            "overall_progress": 60.0,
            "status": "running",
            "message": "Generating",
        }

    def test_log_event_carries_category_and_details(self, publisher: EventStreamPublisher) -> None:
        subscription = publisher.subscribe("job")
        tracker = ProgressTracker("job", publisher)

        tracker.log(LogLevel.WARNING, LogCategory.AI, "retrying", event="stage_retry", attempt=1)

        (event,) = subscription.pending()
        assert event.type == EventType.LOG
        assert event.data["level"] == "warning"
        assert event.data["category"] == "ai"
        assert event.data["details"] == {"attempt": 1}

    def test_terminal_events(self, publisher: EventStreamPublisher) -> None:
        subscription = publisher.subscribe("job")
        tracker = ProgressTracker("job", publisher)

        tracker.complete("completed", "done", sessions=2)
        tracker.error("LLMError", GenerationStage.AI_PROCESSING, "bad json")

        complete, error = subscription.pending()
        assert complete.type == EventType.COMPLETE
        assert complete.data == {"status": "completed", "message": "done", "sessions": 2}
        assert error.type == EventType.ERROR
        assert error.data["stage"] == "ai_processing"
        assert error.data["kind"] == "LLMError"
