"""Stream session type definitions and the transport contract."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class StreamState(Enum):
    """Lifecycle state of a context's push connection."""

    ABSENT = "absent"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    ERRORED = "errored"

    @property
    def live(self) -> bool:
        return self in (StreamState.CONNECTING, StreamState.OPEN)


class TransportEventKind(Enum):
    """What the transport is reporting for a context."""

    MESSAGE = "message"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(slots=True)
class TransportEvent:
    """An event pushed by the transport, tagged with its context id."""

    context_id: str
    kind: TransportEventKind = TransportEventKind.MESSAGE
    payload: Any = None
    detail: str | None = None


class StreamEventKind(Enum):
    """Kind of event delivered to subscribers."""

    MESSAGE = "message"  # Payload from the server
    STATE = "state"  # Connection state transition


@dataclass(slots=True)
class StreamEvent:
    """An event dispatched to the subscribers of one context."""

    context_id: str
    kind: StreamEventKind
    payload: Any = None
    state: StreamState | None = None
    detail: str | None = None
    error: Exception | None = field(default=None, repr=False)

    @classmethod
    def message(cls, context_id: str, payload: Any) -> StreamEvent:
        return cls(context_id=context_id, kind=StreamEventKind.MESSAGE, payload=payload)

    @classmethod
    def transition(
        cls,
        context_id: str,
        state: StreamState,
        detail: str | None = None,
        error: Exception | None = None,
    ) -> StreamEvent:
        return cls(
            context_id=context_id,
            kind=StreamEventKind.STATE,
            state=state,
            detail=detail,
            error=error,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"context_id": self.context_id, "kind": self.kind.value}
        if self.kind is StreamEventKind.MESSAGE:
            data["payload"] = self.payload
        else:
            data["state"] = self.state.value if self.state else None
            data["detail"] = self.detail
        return data


Subscriber = Callable[[StreamEvent], None]
TransportSink = Callable[[TransportEvent], None]


@runtime_checkable
class StreamTransport(Protocol):
    """Push-stream transport owned by the host process.

    The transport multiplexes every context over one channel and pushes
    events into the sink given to ``bind``. Wire framing is its business.
    """

    def bind(self, sink: TransportSink) -> None:
        """Install the callable that receives every transport event."""
        ...

    async def open(self, context_id: str) -> Any:
        """Open a connection for ``context_id`` and return an opaque handle."""
        ...

    async def close(self, handle: Any) -> None:
        """Release a handle returned by ``open``."""
        ...
