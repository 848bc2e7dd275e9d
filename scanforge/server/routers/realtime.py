"""
Live scan progress over WebSocket (`/ws/{scan_id}`) and SSE
(`/api/scans/{scan_id}/events`).

Both transports attach to the session's slot on the ProgressChannel, so a
newer observer of the same session (on either transport) ends the older
stream. Attaching to a session that has already finished yields the
`connected` event followed by the terminal event right away.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Iterable
from urllib.parse import urlparse

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from sse_starlette.sse import EventSourceResponse

from scanforge.base.config import get_config
from scanforge.base.events import ProgressEvent
from scanforge.base.session import SessionSnapshot, SessionStatus
from scanforge.errors import SessionNotFound
from scanforge.server.state import ApplicationState, get_state

router = APIRouter(prefix="/ws", tags=["realtime"])
sse_router = APIRouter(tags=["events"])

logger = logging.getLogger(__name__)


def is_origin_allowed(origin: str, allowed_patterns: Iterable[str]) -> bool:
    """
    Check an Origin header against allowed patterns.

    Patterns are exact origins, "*", or wildcard ports ("http://localhost:*").
    """
    for pattern in allowed_patterns:
        if pattern == "*" or pattern == origin:
            return True
        if pattern.endswith(":*"):
            wanted = urlparse(pattern[:-2])
            actual = urlparse(origin)
            if actual.scheme == wanted.scheme and actual.hostname == wanted.hostname:
                return True
    return False


def terminal_event(snapshot: SessionSnapshot) -> ProgressEvent:
    if snapshot.status == SessionStatus.COMPLETED:
        return ProgressEvent.completed(snapshot.id, len(snapshot.findings))
    message = (snapshot.error or {}).get("message") or "Scan failed"
    return ProgressEvent.error(snapshot.id, message)


async def session_events(state: ApplicationState, scan_id: str) -> AsyncIterator[ProgressEvent]:
    """
    Events for one session until its terminal event or until replaced.

    Raises SessionNotFound before subscribing when the id is unknown.
    """
    state.orchestrator.get_session(scan_id)
    subscription = state.channel.subscribe(scan_id)

    snapshot = state.orchestrator.get_session(scan_id)
    if snapshot.is_terminal:
        pending = subscription.drain()
        state.channel.unsubscribe(scan_id, subscription)
        for event in pending:
            yield event
        if not any(event.is_terminal for event in pending):
            yield terminal_event(snapshot)
        return

    async for event in subscription:
        yield event


@router.websocket("/{scan_id}")
async def ws_scan_progress(websocket: WebSocket, scan_id: str):
    """Stream one session's progress events as JSON text frames."""
    origin = websocket.headers.get("origin")
    if origin and not is_origin_allowed(origin, get_config().security.allowed_origins):
        logger.warning(f"[WebSocket] Denied origin {origin} for scan {scan_id}")
        await websocket.close(code=4403, reason="Origin not allowed")
        return

    await websocket.accept()
    state = get_state()

    try:
        async for event in session_events(state, scan_id):
            await websocket.send_text(event.to_json())
    except SessionNotFound as e:
        logger.info(f"[WebSocket] {e.message}")
        await websocket.send_text(ProgressEvent.error(scan_id, e.message).to_json())
        await websocket.close(code=4404, reason="Scan not found")
        return
    except WebSocketDisconnect:
        logger.debug(f"[WebSocket] Client for scan {scan_id} disconnected")
        return

    logger.debug(f"[WebSocket] Stream for scan {scan_id} finished")
    await websocket.close()


@sse_router.get("/scans/{scan_id}/events")
async def sse_scan_progress(scan_id: str, request: Request):
    """Server-Sent Events stream of one session's progress events."""
    state = get_state()
    # unknown ids fail with a 404 before the stream opens
    state.orchestrator.get_session(scan_id)

    async def event_generator():
        async for event in session_events(state, scan_id):
            if await request.is_disconnected():
                logger.debug(f"[SSE] Client for scan {scan_id} disconnected")
                return
            yield {"event": event.type.value, "data": event.to_json()}

    return EventSourceResponse(event_generator())
