"""WebSocket endpoint streaming a generation job's events.

# ─── HOW THE JOB STREAM WORKS ─────────────────────────────────────────
#
#   Client                                Backend (this file)
#   ──────                                ──────────────────
#   ws = new WebSocket(url)   ──────→    websocket.accept()
#                                         publisher.subscribe(job_id)
#                             ←──────    {"type": "status", "job": {...}}
#                             ←──────    {"type": "stage_update", ...}
#                             ←──────    {"type": "log", ...}
#                             ←──────    {"type": "complete" | "error", ...}
#                                         websocket.close()
#
# The subscription is opened *before* the snapshot is read, so no event
# published in between is lost; events older than the snapshot are never
# replayed.  A client that disconnects early only drops its own
# subscription; the job keeps running.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from src.pipeline.orchestrator import GenerationOrchestrator
from src.utils.errors import JobNotFoundError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# WebSocket close code for "no such job" (application range 4000-4999).
_CLOSE_JOB_NOT_FOUND = 4404


async def websocket_job_events(websocket: WebSocket, job_id: str) -> None:
    """Send the job's status snapshot, then every event until the job ends.

    Parameters
    ----------
    websocket:
        The WebSocket connection managed by FastAPI / Starlette.
    job_id:
        The generation job to follow.
    """
    orchestrator: GenerationOrchestrator = websocket.app.state.orchestrator
    publisher = orchestrator.publisher

    await websocket.accept()
    subscription = publisher.subscribe(job_id)
    _logger.info("websocket_connected", job_id=job_id)

    try:
        try:
            snapshot = orchestrator.status(job_id)
        except JobNotFoundError as exc:
            await websocket.send_json({"type": "error", "kind": exc.kind, "message": exc.message})
            await websocket.close(code=_CLOSE_JOB_NOT_FOUND)
            return

        await websocket.send_json({"type": "status", "job": snapshot.model_dump(mode="json")})

        async for event in subscription:
            await websocket.send_json(event.model_dump(mode="json"))
        await websocket.close()

    except WebSocketDisconnect:
        _logger.info("websocket_disconnected", job_id=job_id)

    finally:
        publisher.unsubscribe(subscription)
        _logger.debug(
            "websocket_subscription_closed",
            job_id=job_id,
            dropped=subscription.dropped,
        )
