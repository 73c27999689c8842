"""Non-blocking fan-out of pipeline events to per-job subscribers.

# ─── HOW EVENT DELIVERY WORKS ─────────────────────────────────────────
#
#   JobRunner ──publish()──→ EventStreamPublisher ──push()──→ Subscription A ─→ WebSocket
#                                                 └─push()──→ Subscription B ─→ ...
#
#   - publish() never awaits: it appends to each subscriber's deque and
#     wakes the reader, so a slow consumer can never stall a job.
#   - Each subscription has its own bounded buffer.  When it is full the
#     oldest non-terminal event is discarded; complete/error always stay.
#   - A subscription's iterator ends right after it yields a terminal
#     event, or once it is closed and drained.
#   - Nothing is replayed: a late subscriber reads the job's status()
#     snapshot first and then follows the live stream.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any

from cachetools import TTLCache

from src.models.events import EventType, PipelineEvent
from src.utils.logging import get_logger

logger = get_logger(__name__)


class Subscription:
    """One consumer's view of a job's event stream.

    Use as an async iterator::

        async for event in subscription:
            ...
    """

    def __init__(self, job_id: str, buffer_size: int) -> None:
        self.job_id = job_id
        self._buffer: deque[PipelineEvent] = deque()
        self._buffer_size = max(1, buffer_size)
        self._wakeup = asyncio.Event()
        self._closed = False
        self._finished = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: PipelineEvent) -> None:
        """Buffer *event*, evicting the oldest non-terminal event when full."""
        if self._closed or self._finished:
            return
        if len(self._buffer) >= self._buffer_size:
            victim = next(
                (i for i, queued in enumerate(self._buffer) if not queued.is_terminal),
                None,
            )
            if victim is not None:
                del self._buffer[victim]
                self.dropped += 1
            elif not event.is_terminal:
                # Only terminal events are queued; the newcomer gives way.
                self.dropped += 1
                return
        self._buffer.append(event)
        self._wakeup.set()

    def close(self) -> None:
        """Stop accepting events; the iterator ends once the buffer drains."""
        self._closed = True
        self._wakeup.set()

    def pending(self) -> list[PipelineEvent]:
        """Snapshot of undelivered events (oldest first)."""
        return list(self._buffer)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> PipelineEvent:
        while True:
            if self._finished:
                raise StopAsyncIteration
            if self._buffer:
                event = self._buffer.popleft()
                if event.is_terminal:
                    self._finished = True
                return event
            if self._closed:
                raise StopAsyncIteration
            self._wakeup.clear()
            await self._wakeup.wait()


class EventStreamPublisher:
    """Route job events to every live subscription of that job.

    Parameters
    ----------
    buffer_size:
        Per-subscriber buffer capacity.
    closed_job_ttl:
        How long a finished job is remembered, so a subscription opened
        after it ended is returned already closed.
    """

    def __init__(self, buffer_size: int = 256, closed_job_ttl: float = 3600.0) -> None:
        self._buffer_size = buffer_size
        self._subscribers: dict[str, list[Subscription]] = {}
        self._sequences: dict[str, int] = {}
        self._closed_jobs: TTLCache[str, bool] = TTLCache(maxsize=10_000, ttl=closed_job_ttl)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def publish(self, job_id: str, event: PipelineEvent) -> PipelineEvent:
        """Stamp *event* with the job's next sequence number and fan it out.

        Synchronous and non-blocking; safe to call from sync callbacks.
        Returns the stamped event.
        """
        sequence = self._sequences.get(job_id, 0) + 1
        self._sequences[job_id] = sequence
        stamped = event.model_copy(update={"job_id": job_id, "sequence": sequence})
        for subscription in self._subscribers.get(job_id, []):
            subscription.push(stamped)
        return stamped

    def emit(self, job_id: str, event_type: EventType, data: dict[str, Any]) -> PipelineEvent:
        """Build and publish an event in one call."""
        return self.publish(job_id, PipelineEvent(job_id=job_id, type=event_type, data=data))

    def subscribe(self, job_id: str) -> Subscription:
        subscription = Subscription(job_id, self._buffer_size)
        if job_id in self._closed_jobs:
            subscription.close()
            return subscription
        self._subscribers.setdefault(job_id, []).append(subscription)
        logger.debug(
            "subscriber_added",
            job_id=job_id,
            total_subscribers=len(self._subscribers[job_id]),
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.close()
        subscribers = self._subscribers.get(subscription.job_id, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
            if subscription.dropped:
                logger.info(
                    "subscriber_dropped_events",
                    job_id=subscription.job_id,
                    dropped=subscription.dropped,
                )
        if not subscribers:
            self._subscribers.pop(subscription.job_id, None)

    def close(self, job_id: str) -> None:
        """Finish every subscription of *job_id* and forget its sequence."""
        for subscription in self._subscribers.pop(job_id, []):
            subscription.close()
        self._sequences.pop(job_id, None)
        self._closed_jobs[job_id] = True

    def subscriber_count(self, job_id: str) -> int:
        return len(self._subscribers.get(job_id, []))
