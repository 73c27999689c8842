"""Utility modules for CourseForge.

Available utility modules (all re-exported here for convenience):

- **errors** -- Domain-specific exception hierarchy rooted at CourseForgeError;
  the stage runner retries TransientServiceError subclasses and fails the
  job on everything else.
- **concurrency** -- semaphore-bounded fan-out, including the worker-thread
  helper used to chunk several resources at once.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    ConfigurationError,
    CourseForgeError,
    LLMError,
    PipelineError,
    ProviderUnavailableError,
    RAGError,
    RateLimitError,
    RetrievalUnavailableError,
    ServiceTimeoutError,
    TransientServiceError,
    ValidationError,
)

# -- Async concurrency helpers ---------------------------------------------
from src.utils.concurrency import gather_in_threads, throttled_gather

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "CourseForgeError",
    "LLMError",
    "PipelineError",
    "ProviderUnavailableError",
    "RAGError",
    "RateLimitError",
    "RetrievalUnavailableError",
    "ServiceTimeoutError",
    "TransientServiceError",
    "ValidationError",
    "configure_logging",
    "gather_in_threads",
    "get_logger",
    "throttled_gather",
]
