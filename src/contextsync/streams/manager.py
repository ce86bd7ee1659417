"""Stream session manager: one shared push connection per context id."""

from __future__ import annotations

import asyncio
import itertools
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from contextsync.config.schema import StreamsConfig
from contextsync.errors import StreamClosed, StreamError
from contextsync.logging import TRACE, VERBOSE, get_logger
from contextsync.streams.types import (
    StreamEvent,
    StreamState,
    StreamTransport,
    Subscriber,
    TransportEvent,
    TransportEventKind,
)

log = get_logger("streams")


@dataclass
class StreamConnection:
    """Connection entry for one context id.

    The transport handle is owned exclusively by this entry. ``generation``
    changes on every (re)open and teardown so a slow open can tell it has
    been superseded.
    """

    context_id: str
    history_limit: int
    state: StreamState = StreamState.CONNECTING
    subscribers: dict[int, Subscriber] = field(default_factory=dict)
    handle: Any = None
    opening: asyncio.Task[None] | None = None
    error: StreamError | None = None
    generation: int = 0
    events_received: int = 0
    history: deque[Any] = field(init=False)

    def __post_init__(self) -> None:
        self.history = deque(maxlen=max(self.history_limit, 0))

    def to_dict(self) -> dict[str, Any]:
        return {
            "context_id": self.context_id,
            "state": self.state.value,
            "subscribers": len(self.subscribers),
            "events_received": self.events_received,
            "error": str(self.error) if self.error else None,
        }


class SubscriptionHandle:
    """A subscriber's share of a context connection.

    Disposing the last handle for a context tears its transport down.
    """

    def __init__(self, manager: StreamSessionManager, context_id: str, token: int) -> None:
        self._manager = manager
        self._context_id = context_id
        self._token = token
        self._disposed = False

    @property
    def context_id(self) -> str:
        return self._context_id

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def state(self) -> StreamState:
        if self._disposed:
            return StreamState.ABSENT
        return self._manager.connection_state(self._context_id)

    async def dispose(self) -> None:
        """Drop this subscription. Safe to call more than once."""
        if self._disposed:
            return
        self._disposed = True
        await self._manager._unsubscribe(self._context_id, self._token)

    async def retry(self) -> StreamState:
        """Reopen an errored or closed connection (manual retry affordance)."""
        if self._disposed:
            raise RuntimeError("Subscription handle already disposed")
        return await self._manager.reconnect(self._context_id)

    async def __aenter__(self) -> SubscriptionHandle:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()

    def __repr__(self) -> str:
        return f"<SubscriptionHandle {self._context_id}#{self._token} state={self.state.value}>"


class StreamSessionManager:
    """Owns at most one live push connection per context id.

    Subscribers for the same context share a single transport connection
    (reference counted by subscription tokens). Events are dispatched to
    every subscriber of the context in transport arrival order; a failing
    subscriber is logged and skipped. Transport failures become ``errored``
    / ``closed`` state events; nothing reconnects until the next
    ``ensure_connected`` (or ``retry``) for that context.

    Example:
        ```python
        manager = StreamSessionManager(transport)
        handle = await manager.ensure_connected("r1", on_event)
        ...
        await handle.dispose()       # last subscriber: transport closed
        await manager.disconnect_all()  # provider teardown
        ```
    """

    def __init__(self, transport: StreamTransport, config: StreamsConfig | None = None) -> None:
        self._transport = transport
        self._config = config or StreamsConfig()
        self._connections: dict[str, StreamConnection] = {}
        self._tokens = itertools.count(1)
        self._background: set[asyncio.Future[Any]] = set()
        self._closed = False
        transport.bind(self.deliver)

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Subscription lifecycle
    # ------------------------------------------------------------------
    async def ensure_connected(self, context_id: str, callback: Subscriber) -> SubscriptionHandle:
        """Subscribe ``callback`` to ``context_id``, opening the transport if needed.

        Concurrent callers for the same context share one open attempt.
        Open failures are not raised: they arrive as an ``errored`` state
        event and show in ``handle.state``.

        Raises:
            RuntimeError: After ``disconnect_all`` has run.
        """
        if self._closed:
            raise RuntimeError("Stream session manager has been shut down")
        if not context_id:
            raise ValueError("context_id must be non-empty")

        entry = self._connections.get(context_id)
        if entry is None:
            entry = StreamConnection(context_id=context_id, history_limit=self._config.history_limit)
            self._connections[context_id] = entry
            self._start_open(entry)
        elif not entry.state.live:
            log.info(f"Reconnecting stream for context '{context_id}' (was {entry.state.value})")
            self._start_open(entry)

        token = next(self._tokens)
        entry.subscribers[token] = callback
        handle = SubscriptionHandle(self, context_id, token)
        log.log(VERBOSE, f"Subscribed #{token} to '{context_id}' ({len(entry.subscribers)} total)")

        opening = entry.opening
        if opening is not None and not opening.done():
            try:
                await asyncio.shield(opening)
            except asyncio.CancelledError:
                await handle.dispose()
                raise
        return handle

    @asynccontextmanager
    async def subscription(self, context_id: str, callback: Subscriber) -> AsyncIterator[SubscriptionHandle]:
        """Async context manager around ensure_connected / dispose."""
        handle = await self.ensure_connected(context_id, callback)
        try:
            yield handle
        finally:
            await handle.dispose()

    async def reconnect(self, context_id: str) -> StreamState:
        """Reopen an errored/closed connection that still has subscribers."""
        entry = self._connections.get(context_id)
        if entry is None:
            return StreamState.ABSENT
        if not entry.state.live:
            self._start_open(entry)
        if entry.opening is not None and not entry.opening.done():
            await asyncio.shield(entry.opening)
        return entry.state

    async def disconnect(self, context_id: str) -> None:
        """Tear down the connection for ``context_id`` once nobody is subscribed.

        Idempotent when the context has no entry.
        """
        entry = self._connections.get(context_id)
        if entry is None:
            return
        if entry.subscribers:
            log.log(
                VERBOSE,
                f"Keeping stream '{context_id}' open for {len(entry.subscribers)} subscriber(s)",
            )
            return
        await self._teardown(entry)

    async def disconnect_all(self) -> None:
        """Tear down every connection regardless of subscribers.

        This is the shutdown boundary of the streaming subsystem: afterwards
        the manager refuses new subscriptions.
        """
        if self._closed:
            log.debug("disconnect_all called on a closed stream manager")
            return
        self._closed = True

        entries = list(self._connections.values())
        self._connections.clear()

        releases = []
        for entry in entries:
            log.info(f"Disconnecting stream '{entry.context_id}'")
            handle = self._retire(entry)
            self._dispatch(
                entry,
                StreamEvent.transition(
                    entry.context_id,
                    StreamState.CLOSED,
                    "session shutdown",
                    StreamClosed(entry.context_id, "session shutdown"),
                ),
            )
            if handle is not None:
                releases.append(self._release(entry.context_id, handle))
            if entry.opening is not None and not entry.opening.done():
                releases.append(entry.opening)

        pending = releases + list(self._background)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _unsubscribe(self, context_id: str, token: int) -> None:
        entry = self._connections.get(context_id)
        if entry is None or token not in entry.subscribers:
            return
        del entry.subscribers[token]
        log.log(VERBOSE, f"Unsubscribed #{token} from '{context_id}' ({len(entry.subscribers)} left)")
        if not entry.subscribers:
            await self.disconnect(context_id)

    # ------------------------------------------------------------------
    # Transport side
    # ------------------------------------------------------------------
    def deliver(self, event: TransportEvent) -> None:
        """Route one transport event to the subscribers of its context."""
        if not event.context_id:
            log.error(f"Protocol violation: transport event without context id dropped ({event.kind.value})")
            return

        entry = self._connections.get(event.context_id)
        if entry is None:
            log.log(TRACE, f"Dropping {event.kind.value} event for inactive context '{event.context_id}'")
            return
        if not entry.state.live:
            log.debug(f"Dropping {event.kind.value} event for {entry.state.value} context '{event.context_id}'")
            return

        if event.kind is TransportEventKind.MESSAGE:
            entry.events_received += 1
            entry.history.append(event.payload)
            self._dispatch(entry, StreamEvent.message(entry.context_id, event.payload))
            return

        if event.kind is TransportEventKind.ERROR:
            state = StreamState.ERRORED
            error: StreamError = StreamError(entry.context_id, event.detail)
            log.warning(str(error))
        else:
            state = StreamState.CLOSED
            error = StreamClosed(entry.context_id, event.detail)
            log.info(str(error))

        entry.state = state
        entry.error = error
        handle, entry.handle = entry.handle, None
        if handle is not None:
            self._spawn(self._release(entry.context_id, handle))
        self._dispatch(entry, StreamEvent.transition(entry.context_id, state, event.detail, error))

    def _start_open(self, entry: StreamConnection) -> None:
        stale_handle, entry.handle = entry.handle, None
        entry.generation += 1
        entry.state = StreamState.CONNECTING
        entry.error = None
        entry.opening = asyncio.create_task(
            self._open(entry, entry.generation, stale_handle),
            name=f"stream-open-{entry.context_id}",
        )

    async def _open(self, entry: StreamConnection, generation: int, stale_handle: Any) -> None:
        context_id = entry.context_id
        if stale_handle is not None:
            await self._release(context_id, stale_handle)

        try:
            handle = await self._transport.open(context_id)
        except Exception as e:
            if not self._is_current(entry, generation):
                return
            error = StreamError(context_id, str(e) or type(e).__name__)
            entry.state = StreamState.ERRORED
            entry.error = error
            log.warning(f"Failed to open stream for '{context_id}': {e}")
            self._dispatch(entry, StreamEvent.transition(context_id, StreamState.ERRORED, error.detail, error))
            return

        if not self._is_current(entry, generation) or entry.state is not StreamState.CONNECTING:
            # Torn down, superseded, or failed by a transport event while opening
            await self._release(context_id, handle)
            return

        entry.handle = handle
        entry.state = StreamState.OPEN
        log.info(f"Stream open for context '{context_id}'")
        self._dispatch(entry, StreamEvent.transition(context_id, StreamState.OPEN))

    def _is_current(self, entry: StreamConnection, generation: int) -> bool:
        return self._connections.get(entry.context_id) is entry and entry.generation == generation

    async def _teardown(self, entry: StreamConnection) -> None:
        if self._connections.get(entry.context_id) is entry:
            del self._connections[entry.context_id]
        handle = self._retire(entry)
        if entry.opening is not None and not entry.opening.done():
            # The open finishes in the background and releases its own handle
            self._track(entry.opening)
        log.info(f"Stream closed for context '{entry.context_id}' (no subscribers)")
        if handle is not None:
            await self._release(entry.context_id, handle)

    def _retire(self, entry: StreamConnection) -> Any:
        handle, entry.handle = entry.handle, None
        entry.generation += 1
        entry.state = StreamState.CLOSED
        return handle

    async def _release(self, context_id: str, handle: Any) -> None:
        try:
            await asyncio.wait_for(self._transport.close(handle), timeout=self._config.close_timeout)
        except Exception as e:
            log.warning(f"Error closing transport for '{context_id}': {e!r}")

    def _spawn(self, coro: Any) -> None:
        self._track(asyncio.ensure_future(coro))

    def _track(self, task: asyncio.Future[Any]) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _dispatch(self, entry: StreamConnection, event: StreamEvent) -> None:
        for token, callback in list(entry.subscribers.items()):
            try:
                callback(event)
            except Exception:
                log.exception(f"Subscriber #{token} for '{entry.context_id}' failed")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def connection_state(self, context_id: str) -> StreamState:
        entry = self._connections.get(context_id)
        return entry.state if entry else StreamState.ABSENT

    def subscriber_count(self, context_id: str) -> int:
        entry = self._connections.get(context_id)
        return len(entry.subscribers) if entry else 0

    def last_error(self, context_id: str) -> StreamError | None:
        entry = self._connections.get(context_id)
        return entry.error if entry else None

    def messages(self, context_id: str) -> list[Any]:
        """Recent payloads received for ``context_id`` (oldest first)."""
        entry = self._connections.get(context_id)
        return list(entry.history) if entry else []

    def clear_messages(self, context_id: str) -> None:
        entry = self._connections.get(context_id)
        if entry:
            entry.history.clear()

    def connections(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self._connections.values()]

    def __contains__(self, context_id: object) -> bool:
        return context_id in self._connections
