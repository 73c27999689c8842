"""Pipeline orchestration components for course generation."""

from src.pipeline.event_publisher import EventStreamPublisher, Subscription
from src.pipeline.job_control import JobControl
from src.pipeline.job_runner import JobRunner, PipelineDependencies
from src.pipeline.orchestrator import GenerationOrchestrator
from src.pipeline.progress_tracker import ProgressTracker, overall_progress

__all__ = [
    "EventStreamPublisher",
    "GenerationOrchestrator",
    "JobControl",
    "JobRunner",
    "PipelineDependencies",
    "ProgressTracker",
    "Subscription",
    "overall_progress",
]
