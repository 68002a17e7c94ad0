"""Tests for the SSE status frame generator."""

import json

import pytest

from deliverychat.api.routes.status import _event_generator
from deliverychat.services.status_broadcaster import StatusBroadcaster
from deliverychat.services.status_events import StatusEvent


class FakeRequest:
    """Reports a disconnect after ``connected_checks`` polls."""

    def __init__(self, connected_checks: int = 100) -> None:
        self.remaining = connected_checks

    async def is_disconnected(self) -> bool:
        self.remaining -= 1
        return self.remaining < 0


@pytest.mark.asyncio
async def test_frames_then_unsubscribe_on_disconnect():
    broadcaster = StatusBroadcaster()
    listener = broadcaster.subscribe()
    broadcaster.publish(StatusEvent.thinking("thread_1"))

    frames = []
    async for frame in _event_generator(FakeRequest(connected_checks=2), broadcaster, listener, ping_interval=1):
        frames.append(frame)

    assert [json.loads(f["data"])["type"] for f in frames] == ["connected", "thinking"]
    assert broadcaster.listener_count == 0


@pytest.mark.asyncio
async def test_idle_connection_gets_ping_comment():
    broadcaster = StatusBroadcaster()
    listener = broadcaster.subscribe()
    listener.queue.get_nowait()

    generator = _event_generator(FakeRequest(), broadcaster, listener, ping_interval=0.01)
    assert await generator.__anext__() == {"comment": "ping"}
    await generator.aclose()

    assert broadcaster.listener_count == 0


@pytest.mark.asyncio
async def test_stops_when_listener_dropped():
    broadcaster = StatusBroadcaster()
    listener = broadcaster.subscribe()
    listener.queue.get_nowait()
    broadcaster.unsubscribe(listener.id)

    frames = [frame async for frame in _event_generator(FakeRequest(), broadcaster, listener)]

    assert frames == []
