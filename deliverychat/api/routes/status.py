"""FastAPI route for SSE status streaming.

Every connected viewer receives every status event published while it is
connected: ``data: <json>`` frames in the StatusEvent shape, plus comment
pings while idle so proxies keep the connection open.
"""

import asyncio
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from deliverychat.api.deps import get_broadcaster
from deliverychat.services.status_broadcaster import Listener, StatusBroadcaster

logger = logging.getLogger(__name__)

router = APIRouter(tags=["status"])

PING_INTERVAL = 15.0


async def _event_generator(
    request: Request,
    broadcaster: StatusBroadcaster,
    listener: Listener,
    ping_interval: float = PING_INTERVAL,
) -> AsyncGenerator[dict, None]:
    """Generate SSE frames from the listener's queue.

    Args:
        request: FastAPI request object for disconnect detection.
        broadcaster: Registry the listener belongs to.
        listener: Subscription created for this connection.
        ping_interval: Idle seconds before a keep-alive comment is sent.

    Yields:
        Frames for EventSourceResponse (``data`` or ``comment``).
    """
    try:
        while not listener.closed:
            if await request.is_disconnected():
                break
            try:
                payload = await listener.get(timeout=ping_interval)
            except asyncio.TimeoutError:
                yield {"comment": "ping"}
                continue
            yield {"data": payload}
    finally:
        broadcaster.unsubscribe(listener.id)


@router.get("/status")
async def stream_status(
    request: Request,
    broadcaster: StatusBroadcaster = Depends(get_broadcaster),
) -> EventSourceResponse:
    """Stream status events via Server-Sent Events.

    The first event is always ``connected`` with the current listener
    count. Disconnecting removes the listener; it never cancels runs.
    """
    listener = broadcaster.subscribe()
    return EventSourceResponse(
        _event_generator(request, broadcaster, listener),
        media_type="text/event-stream",
        sep="\n",
    )
