import asyncio
import json
import threading

import pytest

from scanforge.base.events import SUBSCRIPTION_BUFFER, ProgressChannel, ProgressEvent, ProgressEventType


def test_event_wire_shape_omits_unset_fields():
    event = ProgressEvent.progress("scan-1", "Semgrep", 33.333, "Starting Semgrep scan...")
    data = event.to_dict()

    assert data["type"] == "progress"
    assert data["scanId"] == "scan-1"
    assert data["currentTool"] == "Semgrep"
    assert data["progressPercent"] == 33
    assert "finding" not in data
    assert "totalFindings" not in data
    assert data["timestamp"].endswith("+00:00")
    assert json.loads(event.to_json()) == data


def test_completed_event_carries_total():
    data = ProgressEvent.completed("scan-1", 7).to_dict()
    assert data["type"] == "completed"
    assert data["totalFindings"] == 7
    assert data["progressPercent"] == 100


def test_publish_without_subscriber_is_dropped():
    channel = ProgressChannel()
    assert channel.publish("nobody", ProgressEvent.error("nobody", "x")) is False


@pytest.mark.asyncio
async def test_subscriber_receives_connected_then_events():
    channel = ProgressChannel()
    subscription = channel.subscribe("s1")

    assert channel.publish("s1", ProgressEvent.progress("s1", "Trivy", 50, "half"))
    assert channel.publish("s1", ProgressEvent.completed("s1", 3))
    # after the terminal event the stream ends
    channel.publish("s1", ProgressEvent.progress("s1", None, 100, "late"))

    received = [event async for event in subscription]

    assert [e.type for e in received] == [
        ProgressEventType.CONNECTED,
        ProgressEventType.PROGRESS,
        ProgressEventType.COMPLETED,
    ]
    assert not channel.has_subscriber("s1")


@pytest.mark.asyncio
async def test_last_subscriber_wins():
    channel = ProgressChannel()
    first = channel.subscribe("s1")
    second = channel.subscribe("s1")

    channel.publish("s1", ProgressEvent.error("s1", "boom"))

    # the replaced subscription ends after what it had already queued
    old_events = [event async for event in first]
    new_events = [event async for event in second]

    assert [e.type for e in old_events] == [ProgressEventType.CONNECTED]
    assert [e.type for e in new_events] == [ProgressEventType.CONNECTED, ProgressEventType.ERROR]
    assert first.closed


@pytest.mark.asyncio
async def test_stale_unsubscribe_does_not_detach_newer_subscriber():
    channel = ProgressChannel()
    first = channel.subscribe("s1")
    channel.subscribe("s1")

    channel.unsubscribe("s1", first)

    assert channel.has_subscriber("s1")


@pytest.mark.asyncio
async def test_publish_from_another_thread():
    channel = ProgressChannel()
    subscription = channel.subscribe("s1")

    def worker():
        channel.publish("s1", ProgressEvent.progress("s1", "Semgrep", 100, "done"))
        channel.publish("s1", ProgressEvent.completed("s1", 0))

    thread = threading.Thread(target=worker)
    thread.start()
    thread.join()

    received = await asyncio.wait_for(_collect(subscription), timeout=5)
    assert [e.type.value for e in received] == ["connected", "progress", "completed"]


def _finding_event(scan_id, n):
    return ProgressEvent.discovered(scan_id, "Semgrep", {"id": str(n)}, n)


@pytest.mark.asyncio
async def test_lagging_subscriber_still_gets_terminal_event():
    channel = ProgressChannel()
    subscription = channel.subscribe("s1")

    for n in range(SUBSCRIPTION_BUFFER + 500):
        channel.publish("s1", _finding_event("s1", n))
    channel.publish("s1", ProgressEvent.progress("s1", None, 100, "done"))
    channel.publish("s1", ProgressEvent.completed("s1", SUBSCRIPTION_BUFFER + 500))

    received = await asyncio.wait_for(_collect(subscription), timeout=5)

    findings = [e for e in received if e.type == ProgressEventType.FINDING]
    assert len(findings) < SUBSCRIPTION_BUFFER + 500
    assert received[-2].type == ProgressEventType.PROGRESS
    assert received[-1].type == ProgressEventType.COMPLETED
    assert not channel.has_subscriber("s1")


@pytest.mark.asyncio
async def test_replaced_lagging_subscriber_stream_ends():
    channel = ProgressChannel()
    first = channel.subscribe("s1")
    for n in range(SUBSCRIPTION_BUFFER + 10):
        channel.publish("s1", _finding_event("s1", n))

    channel.subscribe("s1")

    old_events = await asyncio.wait_for(_collect(first), timeout=5)
    assert old_events[0].type == ProgressEventType.CONNECTED
    assert all(e.type == ProgressEventType.FINDING for e in old_events[1:])
    assert channel.has_subscriber("s1")


async def _collect(subscription):
    return [event async for event in subscription]
