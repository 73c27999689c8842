"""Shared concurrency primitives for the generation pipeline.

Two patterns are exposed:

1. **throttled_gather** -- ``asyncio.gather`` with each awaitable wrapped
   in a semaphore acquire/release, for bounded fan-out over arbitrary
   coroutines.

2. **gather_in_threads** -- runs a blocking, CPU-bound callable over a list
   of inputs in worker threads (``asyncio.to_thread``) with bounded
   concurrency.  Chunking and quality scoring use this so several course
   resources are processed at once without stalling the event loop.

Semaphores are created per call rather than at module level: each
generation job owns its own concurrency budget and never competes with
another job for slots.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

_T = TypeVar("_T")


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = False,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most ``semaphore`` slots at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore bounding how many awaitables run at once.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


async def gather_in_threads(
    func: Callable[..., _T],
    arguments: list[tuple[Any, ...]],
    max_concurrency: int = 4,
) -> list[_T]:
    """Call ``func(*args)`` for every tuple in *arguments* on worker threads.

    Results come back in input order.  The first exception raised by any
    call propagates to the caller.
    """
    semaphore = asyncio.Semaphore(max(1, max_concurrency))
    coros = [asyncio.to_thread(func, *args) for args in arguments]
    return await throttled_gather(coros, semaphore, return_exceptions=False)  # type: ignore[return-value]
