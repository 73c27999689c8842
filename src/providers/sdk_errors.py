"""Translation of vendor SDK exceptions into the CourseForge error taxonomy.

Both the ``openai`` and ``anthropic`` SDKs expose the same exception shape
(``RateLimitError``, ``APITimeoutError``, ``APIConnectionError``,
``APIStatusError`` with ``status_code``), so one mapping covers every
adapter:

    rate limit                       → RateLimitError          (transient)
    timeout                          → ServiceTimeoutError     (transient)
    connection failure / 5xx / 529   → ProviderUnavailableError (transient)
    anything else (4xx, bad request) → the adapter's permanent error class
"""

from __future__ import annotations

import anthropic
import openai

from src.utils.errors import (
    CourseForgeError,
    ProviderUnavailableError,
    RateLimitError,
    ServiceTimeoutError,
)

_RATE_LIMIT = (openai.RateLimitError, anthropic.RateLimitError)
_TIMEOUT = (openai.APITimeoutError, anthropic.APITimeoutError)
_CONNECTION = (openai.APIConnectionError, anthropic.APIConnectionError)
_STATUS = (openai.APIStatusError, anthropic.APIStatusError)


def translate_sdk_error(
    exc: Exception,
    provider_name: str,
    permanent: type[CourseForgeError],
    action: str,
) -> CourseForgeError:
    """Return the taxonomy error for an SDK exception (caller raises it ``from exc``)."""
    if isinstance(exc, _RATE_LIMIT):
        return RateLimitError(message=f"{action} rate limited: {exc}", provider_name=provider_name)
    # APITimeoutError subclasses APIConnectionError, so check it first.
    if isinstance(exc, _TIMEOUT):
        return ServiceTimeoutError(message=f"{action} timed out: {exc}", provider_name=provider_name)
    if isinstance(exc, _CONNECTION):
        return ProviderUnavailableError(
            message=f"{action} could not connect: {exc}", provider_name=provider_name
        )
    if isinstance(exc, _STATUS) and exc.status_code >= 500:
        return ProviderUnavailableError(
            message=f"{action} failed with HTTP {exc.status_code}: {exc}",
            provider_name=provider_name,
        )
    return permanent(message=f"{action} failed: {exc}", provider_name=provider_name)
