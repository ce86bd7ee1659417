"""Push-stream session management.

One transport connection per context id, shared by every subscriber of
that context:

    handle = await manager.ensure_connected("r1", on_event)
    await handle.dispose()
"""

from contextsync.streams.manager import (
    StreamConnection,
    StreamSessionManager,
    SubscriptionHandle,
)
from contextsync.streams.types import (
    StreamEvent,
    StreamEventKind,
    StreamState,
    StreamTransport,
    Subscriber,
    TransportEvent,
    TransportEventKind,
    TransportSink,
)

__all__ = [
    "StreamConnection",
    "StreamSessionManager",
    "SubscriptionHandle",
    "StreamEvent",
    "StreamEventKind",
    "StreamState",
    "StreamTransport",
    "Subscriber",
    "TransportEvent",
    "TransportEventKind",
    "TransportSink",
]
