"""Cooperative cancel and pause flags for one generation job.

Nothing here interrupts running work: the job runner polls these flags at
its checkpoints (stage entry, between per-session model calls, while
paused, and before the final persistence hand-off).
"""

from __future__ import annotations

import asyncio

from src.utils.errors import JobCancelled


class JobControl:
    def __init__(self) -> None:
        self._cancel_requested = False
        self._pause_requested = False
        self._resumed = asyncio.Event()
        self._resumed.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    @property
    def pause_requested(self) -> bool:
        return self._pause_requested

    def request_cancel(self) -> None:
        self._cancel_requested = True
        # Wake a paused runner so it can observe the cancellation.
        self._resumed.set()

    def request_pause(self) -> None:
        self._pause_requested = True
        self._resumed.clear()

    def request_resume(self) -> None:
        self._pause_requested = False
        self._resumed.set()

    def raise_if_cancelled(self) -> None:
        if self._cancel_requested:
            raise JobCancelled()

    async def wait_while_paused(self) -> None:
        """Block until resumed or cancelled; raises :class:`JobCancelled` on cancel."""
        while self._pause_requested and not self._cancel_requested:
            await self._resumed.wait()
        self.raise_if_cancelled()
