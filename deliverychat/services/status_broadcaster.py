"""Status broadcaster: fan out progress events to every connected viewer.

Bridges orchestrator progress to Server-Sent Events connections. Each
listener owns a bounded asyncio.Queue that the SSE route drains. Publishing
serializes the event once and puts the same payload on every queue; a
listener whose channel is closed (or whose queue is full because the
client stopped reading) is dropped without affecting the others.

The broadcaster is created by the application lifespan and injected into
routes; there is no module-level instance.
"""

import asyncio
import logging
from uuid import uuid4

from deliverychat.errors import TransportError
from deliverychat.services.status_events import StatusEvent

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100


class Listener:
    """One connected viewer.

    Attributes:
        id: Opaque listener identifier.
        queue: Serialized events waiting to be written to the channel.
        closed: Set once the channel is gone; deliveries then fail.
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self.id = uuid4().hex[:12]
        self.queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self.closed = False

    def deliver(self, payload: str) -> None:
        """Enqueue a serialized event.

        Raises:
            TransportError: If the channel is closed or not keeping up.
        """
        if self.closed:
            raise TransportError(f"Listener {self.id} channel is closed")
        try:
            self.queue.put_nowait(payload)
        except asyncio.QueueFull as e:
            raise TransportError(f"Listener {self.id} queue is full") from e

    def close(self) -> None:
        self.closed = True

    async def get(self, timeout: float | None = None) -> str:
        """Wait for the next payload (raises asyncio.TimeoutError on timeout)."""
        return await asyncio.wait_for(self.queue.get(), timeout=timeout)


class StatusBroadcaster:
    """Registry of connected listeners.

    Single event loop only; all methods run on the loop thread, so the
    registry needs no lock.
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._listeners: dict[str, Listener] = {}
        self._queue_size = queue_size

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def listener_ids(self) -> list[str]:
        return list(self._listeners)

    def subscribe(self) -> Listener:
        """Register a listener and deliver a ``connected`` event to it."""
        listener = Listener(self._queue_size)
        self._listeners[listener.id] = listener
        listener.deliver(StatusEvent.connected(clients=len(self._listeners)).to_json())
        logger.info("Status listener %s connected (%d total)", listener.id, len(self._listeners))
        return listener

    def unsubscribe(self, listener_id: str) -> None:
        """Remove a listener. No-op if it is already gone."""
        listener = self._listeners.pop(listener_id, None)
        if listener is not None:
            listener.close()
            logger.info(
                "Status listener %s disconnected (%d remaining)",
                listener_id,
                len(self._listeners),
            )

    def publish(self, event: StatusEvent) -> int:
        """Deliver an event to every listener.

        Returns:
            Number of listeners the event was delivered to.
        """
        payload = event.to_json()
        delivered = 0
        for listener_id, listener in list(self._listeners.items()):
            try:
                listener.deliver(payload)
                delivered += 1
            except TransportError as e:
                logger.warning("Dropping status listener: %s", e)
                self.unsubscribe(listener_id)
        logger.debug("Broadcast %s to %d listener(s)", event.type, delivered)
        return delivered

    def close(self) -> None:
        """Disconnect every listener (server shutdown)."""
        for listener_id in list(self._listeners):
            self.unsubscribe(listener_id)
