"""Service layer for delivery chat.

Provides the status broadcaster that fans progress out to SSE viewers and
the in-memory thread store used by the assistant backend.
"""

from deliverychat.services.status_broadcaster import Listener, StatusBroadcaster
from deliverychat.services.status_events import StatusEvent
from deliverychat.services.thread_store import ThreadStore

__all__ = [
    "Listener",
    "StatusBroadcaster",
    "StatusEvent",
    "ThreadStore",
]
