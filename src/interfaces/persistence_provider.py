"""Abstract base class for the persistence collaborator.

The pipeline only ever writes through this interface: job snapshots at
each transition, resource records after chunking, and the finished
:class:`~src.models.course.CourseDraft`.  It never reads back while a job
is running.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.course import CourseDraft
from src.models.pipeline import GenerationJob


# Concrete implementation: SQLitePersistenceProvider (src/providers/persistence/)
class IPersistenceProvider(ABC):
    """Write-side contract for course, resource and job records."""

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare storage (create tables, directories)."""

    @abstractmethod
    async def save_job(self, job: GenerationJob) -> None:
        """Upsert the latest snapshot of *job*."""

    @abstractmethod
    async def save_resource_record(
        self,
        course_id: str,
        document_id: str,
        quality_score: float,
        chunk_count: int,
        token_count: int,
    ) -> None:
        """Record that a resource has been chunked and indexed."""

    @abstractmethod
    async def save_course_draft(self, draft: CourseDraft) -> None:
        """Accept a finished course draft tree."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
