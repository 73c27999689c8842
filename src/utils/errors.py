"""Custom exception hierarchy for CourseForge.

All application exceptions inherit from :class:`CourseForgeError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "chromadb", "jina") caused the failure.

The hierarchy is organized by how the pipeline reacts to each error:

    CourseForgeError  (base -- catch-all for any CourseForge error)
    +-- ValidationError            (bad config / input -- fail, never retry)
    |   +-- EmptyDocumentError     (document with no text to chunk)
    +-- TransientServiceError      (retry with backoff, then escalate)
    |   +-- RateLimitError         (provider rate-limit exceeded)
    |   +-- ServiceTimeoutError    (external call exceeded its timeout)
    |   +-- ProviderUnavailableError (external service down / 5xx)
    +-- RetrievalUnavailableError  (index/search backend unreachable)
    +-- QualityWarning             (recorded and logged, never raised)
    +-- JobAlreadyRunningError     (one active job per course)
    +-- JobNotFoundError           (unknown job id)
    +-- JobCancelled               (cooperative halt -- not a failure)
    +-- PipelineError              (invalid job state transition)
    +-- ConfigurationError         (startup / missing config)
    +-- LLMError                   (unusable model response)
    +-- RAGError                   (non-transient embedding / store failure)

The stage runner only needs ``isinstance(exc, TransientServiceError)`` to
decide between retrying a stage and failing the job.
"""


class CourseForgeError(Exception):
    """Base exception for all CourseForge errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    @property
    def kind(self) -> str:
        """Short error kind reported on failed jobs (the class name)."""
        return type(self).__name__

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Input / configuration errors (non-transient)
# ---------------------------------------------------------------------------

class ValidationError(CourseForgeError):
    """Raised for invalid configuration or input.  Never retried."""

    def __init__(
        self,
        message: str = "Invalid configuration or input",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmptyDocumentError(ValidationError):
    """Raised when a document contains no chunkable text."""

    def __init__(
        self,
        message: str = "Document is empty",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(CourseForgeError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External service errors
# ---------------------------------------------------------------------------

class TransientServiceError(CourseForgeError):
    """Raised when an external call fails in a way that may succeed later.

    Callers retry these with jittered exponential backoff and escalate
    once the retry budget is spent.
    """

    def __init__(
        self,
        message: str = "External service temporarily unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(TransientServiceError):
    """Raised when an API rate limit is exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ServiceTimeoutError(TransientServiceError):
    """Raised when an external call does not answer within its timeout."""

    def __init__(
        self,
        message: str = "External call timed out",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderUnavailableError(TransientServiceError):
    """Raised when an external service or provider is unreachable or returns 5xx."""

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(CourseForgeError):
    """Raised when an LLM call is rejected or returns an unparseable response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# RAG / retrieval errors
# ---------------------------------------------------------------------------

class RAGError(CourseForgeError):
    """Raised when an embedding or vector-store operation fails permanently."""

    def __init__(
        self,
        message: str = "RAG pipeline operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RetrievalUnavailableError(CourseForgeError):
    """Raised when retrieval cannot reach the index.

    There is no empty-result fallback: generating from an empty context
    set would quietly degrade the course.
    """

    def __init__(
        self,
        message: str = "Retrieval backend is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class QualityWarning(CourseForgeError):
    """A chunk or draft scored below the minimum quality threshold.

    Instances are built and logged, never raised through the pipeline.
    """

    def __init__(
        self,
        message: str = "Content scored below the minimum quality threshold",
        provider_name: str | None = None,
        subject_id: str = "",
        score: float = 0.0,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._subject_id = subject_id
        self._score = score

    @property
    def subject_id(self) -> str:
        return self._subject_id

    @property
    def score(self) -> float:
        return self._score


# ---------------------------------------------------------------------------
# Orchestration errors
# ---------------------------------------------------------------------------

class JobAlreadyRunningError(CourseForgeError):
    """Raised when a course already has a pending, running or paused job."""

    def __init__(
        self,
        message: str = "A generation job is already active for this course",
        provider_name: str | None = None,
        job_id: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._job_id = job_id

    @property
    def job_id(self) -> str | None:
        return self._job_id


class JobNotFoundError(CourseForgeError):
    """Raised when a job id is unknown (or its snapshot has expired)."""

    def __init__(
        self,
        message: str = "Generation job not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class JobCancelled(CourseForgeError):
    """Signals a cooperative cancellation observed at a checkpoint."""

    def __init__(
        self,
        message: str = "Generation job was cancelled",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class PipelineError(CourseForgeError):
    """Raised when pipeline orchestration fails (invalid state transition, etc.)."""

    def __init__(
        self,
        message: str = "Pipeline orchestration failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
