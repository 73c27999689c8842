"""Job registry and control surface for course generation.

The orchestrator owns nothing but bookkeeping: which course has an active
job, each job's :class:`JobControl`, its asyncio task and its latest
snapshot.  The pipeline itself lives in :class:`JobRunner`.

ARCHITECTURE NOTE:
    ``start`` does the course-lock check-and-set with no ``await`` between
    the check and the set, so two concurrent starts for the same course
    cannot both win on a single event loop.  The lock is released by the
    task's done-callback, which also moves the terminal snapshot into a
    TTL cache and closes the job's event stream.
"""

from __future__ import annotations

import asyncio
import uuid

import structlog
from cachetools import TTLCache

from src.models.course import CourseBrief
from src.models.pipeline import GenerationConfig, GenerationJob, JobStatus
from src.pipeline.event_publisher import EventStreamPublisher
from src.pipeline.job_control import JobControl
from src.pipeline.job_runner import JobRunner, PipelineDependencies
from src.pipeline.progress_tracker import ProgressTracker
from src.utils.errors import JobAlreadyRunningError, JobNotFoundError, PipelineError
from src.utils.logging import get_logger


class GenerationOrchestrator:
    """Start, control and observe course generation jobs.

    Parameters
    ----------
    deps:
        Shared pipeline collaborators handed to every :class:`JobRunner`.
    publisher:
        Event stream every job publishes onto.
    default_config:
        Used when ``start`` is called without a config.
    retention_seconds:
        How long terminal snapshots stay queryable through ``status``.
    """

    def __init__(
        self,
        deps: PipelineDependencies,
        publisher: EventStreamPublisher,
        default_config: GenerationConfig | None = None,
        retention_seconds: float = 3600.0,
    ) -> None:
        self._deps = deps
        self._publisher = publisher
        self._default_config = default_config or GenerationConfig()
        self._logger: structlog.BoundLogger = get_logger(__name__)

        self._active_courses: dict[str, str] = {}
        self._live: dict[str, GenerationJob] = {}
        self._finished: TTLCache[str, GenerationJob] = TTLCache(
            maxsize=10_000, ttl=retention_seconds
        )
        self._controls: dict[str, JobControl] = {}
        self._tasks: dict[str, asyncio.Task[GenerationJob]] = {}

    @property
    def publisher(self) -> EventStreamPublisher:
        return self._publisher

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self, course: CourseBrief, config: GenerationConfig | None = None) -> str:
        """Create a job for *course* and schedule it; returns the job id.

        Raises
        ------
        JobAlreadyRunningError
            If the course already has a pending, running or paused job.
            No job record is created in that case.
        """
        existing = self._active_courses.get(course.course_id)
        if existing is not None:
            raise JobAlreadyRunningError(
                message=f"Course {course.course_id} already has active job {existing}",
                job_id=existing,
            )
        job_id = str(uuid.uuid4())
        self._active_courses[course.course_id] = job_id

        job = GenerationJob(job_id=job_id, course_id=course.course_id)
        control = JobControl()
        runner = JobRunner(
            job=job,
            course=course,
            config=config or self._default_config,
            deps=self._deps,
            tracker=ProgressTracker(job_id, self._publisher),
            control=control,
            on_update=self._record,
        )
        self._live[job_id] = job
        self._controls[job_id] = control

        task = asyncio.create_task(runner.run(), name=f"generation-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t, jid=job_id, cid=course.course_id: self._on_done(jid, cid, t))

        self._logger.info(
            "job_scheduled",
            job_id=job_id,
            course_id=course.course_id,
            resources=len(course.resources),
        )
        return job_id

    def status(self, job_id: str) -> GenerationJob:
        job = self._live.get(job_id) or self._finished.get(job_id)
        if job is None:
            raise JobNotFoundError(message=f"Job {job_id} not found")
        return job

    def cancel(self, job_id: str) -> GenerationJob:
        job = self.status(job_id)
        control = self._controls.get(job_id)
        if not job.can_cancel or control is None:
            raise PipelineError(message=f"Job {job_id} is {job.status.value} and cannot be cancelled")
        control.request_cancel()
        self._logger.info("job_cancel_requested", job_id=job_id)
        return job

    def pause(self, job_id: str) -> GenerationJob:
        job = self.status(job_id)
        control = self._controls.get(job_id)
        if control is None or job.status not in (JobStatus.PENDING, JobStatus.RUNNING):
            raise PipelineError(message=f"Job {job_id} is {job.status.value} and cannot be paused")
        if control.pause_requested:
            raise PipelineError(message=f"Job {job_id} already has a pause pending")
        control.request_pause()
        self._logger.info("job_pause_requested", job_id=job_id)
        return job

    def resume(self, job_id: str) -> GenerationJob:
        job = self.status(job_id)
        control = self._controls.get(job_id)
        if control is None or not control.pause_requested or job.status.is_terminal:
            raise PipelineError(message=f"Job {job_id} is {job.status.value} and not paused")
        control.request_resume()
        self._logger.info("job_resume_requested", job_id=job_id)
        return job

    def active_jobs(self) -> list[GenerationJob]:
        return list(self._live.values())

    async def wait(self, job_id: str) -> GenerationJob:
        """Await the job's task (if still running) and return its final snapshot."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait({task})
        return self.status(job_id)

    async def shutdown(self) -> None:
        """Cancel every running job task and wait for them to settle."""
        tasks = list(self._tasks.values())
        if not tasks:
            return
        self._logger.info("orchestrator_shutdown", running_jobs=len(tasks))
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _record(self, job: GenerationJob) -> None:
        if job.job_id in self._live:
            self._live[job.job_id] = job

    def _on_done(self, job_id: str, course_id: str, task: asyncio.Task[GenerationJob]) -> None:
        job = self._live.pop(job_id, None)
        if not task.cancelled() and task.exception() is None:
            job = task.result()
        if job is not None:
            self._finished[job_id] = job

        if self._active_courses.get(course_id) == job_id:
            del self._active_courses[course_id]
        self._controls.pop(job_id, None)
        self._tasks.pop(job_id, None)
        self._publisher.close(job_id)
        self._logger.info(
            "job_finished",
            job_id=job_id,
            course_id=course_id,
            status=job.status.value if job else None,
        )
