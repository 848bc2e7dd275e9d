"""
Progress channel: per-session live event delivery.

PURPOSE:
The orchestrator pushes structured events (progress, discovered findings,
completion, errors) for a session; at most one observer (a WebSocket or SSE
client) receives them.

LOGIC:
- One slot per session id. A new subscription replaces the previous one
  (last writer wins) and the replaced stream ends.
- publish() never blocks and never raises. With nobody subscribed the event
  is dropped; it is not queued for a later subscriber.
- A lagging subscriber loses `finding` events past SUBSCRIPTION_BUFFER, never
  progress, terminal events or the close marker.
- Delivery across threads goes through loop.call_soon_threadsafe on the
  subscriber's loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

logger = logging.getLogger(__name__)

# Queued `finding` events a slow observer can fall behind by before new ones
# are dropped; progress and terminal events are always queued
SUBSCRIPTION_BUFFER = 1000


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProgressEventType(str, Enum):
    CONNECTED = "connected"
    PROGRESS = "progress"
    FINDING = "finding"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_EVENT_TYPES = (ProgressEventType.COMPLETED, ProgressEventType.ERROR)


@dataclass(frozen=True)
class ProgressEvent:
    """
    One event on a session's progress stream.

    Serialized as `{type, scanId, currentTool?, progressPercent?, message?,
    finding?, runningTotal?, totalFindings?, timestamp}`; unset optional
    fields are omitted.
    """
    type: ProgressEventType
    scan_id: str
    current_tool: Optional[str] = None
    progress_percent: Optional[int] = None
    message: Optional[str] = None
    finding: Optional[Dict[str, Any]] = None
    running_total: Optional[int] = None
    total_findings: Optional[int] = None
    timestamp: str = field(default_factory=utc_timestamp)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.value, "scanId": self.scan_id}
        optional = (
            ("currentTool", self.current_tool),
            ("progressPercent", self.progress_percent),
            ("message", self.message),
            ("finding", self.finding),
            ("runningTotal", self.running_total),
            ("totalFindings", self.total_findings),
        )
        for key, value in optional:
            if value is not None:
                data[key] = value
        data["timestamp"] = self.timestamp
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    # --- Constructors -----------------------------------------------------

    @classmethod
    def connected(cls, scan_id: str) -> "ProgressEvent":
        return cls(ProgressEventType.CONNECTED, scan_id, message="Connected to scan progress")

    @classmethod
    def progress(cls, scan_id: str, tool: Optional[str], percent: float, message: str) -> "ProgressEvent":
        return cls(
            ProgressEventType.PROGRESS,
            scan_id,
            current_tool=tool,
            progress_percent=int(round(percent)),
            message=message,
        )

    @classmethod
    def discovered(cls, scan_id: str, tool: str, finding: Dict[str, Any], running_total: int) -> "ProgressEvent":
        return cls(
            ProgressEventType.FINDING,
            scan_id,
            current_tool=tool,
            finding=finding,
            running_total=running_total,
        )

    @classmethod
    def completed(cls, scan_id: str, total_findings: int) -> "ProgressEvent":
        return cls(
            ProgressEventType.COMPLETED,
            scan_id,
            progress_percent=100,
            message="Scan completed",
            total_findings=total_findings,
        )

    @classmethod
    def error(cls, scan_id: str, message: str) -> "ProgressEvent":
        return cls(ProgressEventType.ERROR, scan_id, message=message)


_CLOSED = object()


class Subscription:
    """
    The single live stream for one session.

    Iterating yields events until the stream is closed (replaced by a newer
    subscriber, or explicitly) or a terminal event has been yielded.
    """

    def __init__(self, channel: "ProgressChannel", session_id: str, loop: asyncio.AbstractEventLoop):
        self.channel = channel
        self.session_id = session_id
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _put(self, item: Any) -> None:
        if (
            isinstance(item, ProgressEvent)
            and item.type == ProgressEventType.FINDING
            and self._queue.qsize() >= SUBSCRIPTION_BUFFER
        ):
            logger.debug(f"[ProgressChannel] Dropping finding event for {self.session_id}: subscriber is behind")
            return
        self._queue.put_nowait(item)

    def deliver(self, item: Any) -> None:
        """Hand an item to the subscriber's loop without blocking."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._put(item)
            return
        try:
            self._loop.call_soon_threadsafe(self._put, item)
        except RuntimeError:
            # Subscriber loop already closed
            self._closed = True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.deliver(_CLOSED)

    def drain(self) -> List[ProgressEvent]:
        """Return every event already queued, without waiting."""
        events: List[ProgressEvent] = []
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return events
            if item is _CLOSED:
                return events
            events.append(item)

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        try:
            while True:
                item = await self._queue.get()
                if item is _CLOSED:
                    return
                yield item
                if item.is_terminal:
                    return
        finally:
            self._closed = True
            self.channel.unsubscribe(self.session_id, self)


class ProgressChannel:
    """Single-slot mailbox per session id."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: Dict[str, Subscription] = {}

    def subscribe(self, session_id: str) -> Subscription:
        """
        Attach the live observer for `session_id`.

        Must be called from a running event loop. Any previous subscriber for
        the same session is closed. A `connected` event is queued first.
        """
        loop = asyncio.get_running_loop()
        subscription = Subscription(self, session_id, loop)

        with self._lock:
            previous = self._subscribers.get(session_id)
            self._subscribers[session_id] = subscription

        if previous is not None:
            logger.info(f"[ProgressChannel] Replacing subscriber for session {session_id}")
            previous.close()

        subscription.deliver(ProgressEvent.connected(session_id))
        return subscription

    def unsubscribe(self, session_id: str, subscription: Optional[Subscription] = None) -> None:
        """Detach the observer; with `subscription` given, only if it is still the current one."""
        with self._lock:
            current = self._subscribers.get(session_id)
            if current is None:
                return
            if subscription is not None and current is not subscription:
                return
            del self._subscribers[session_id]
        current.close()

    def has_subscriber(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._subscribers

    def publish(self, session_id: str, event: ProgressEvent) -> bool:
        """Fire-and-forget delivery. Returns False when the event was dropped."""
        with self._lock:
            subscription = self._subscribers.get(session_id)

        if subscription is None or subscription.closed:
            return False

        try:
            subscription.deliver(event)
        except Exception as e:
            logger.debug(f"[ProgressChannel] Failed to deliver {event.type.value} for {session_id}: {e}")
            return False
        return True
