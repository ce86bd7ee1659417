"""WebSocket relay from context streams to dashboard clients."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

from fastapi import WebSocketDisconnect

from contextsync.streams import StreamEvent

if TYPE_CHECKING:
    from fastapi import WebSocket

    from contextsync.streams import StreamSessionManager

log = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks dashboard websockets per context id.

    Each websocket holds its own stream subscription, so a context's
    transport stays open exactly as long as some client (or another
    subscriber) is watching it.
    """

    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = {}

    async def relay(self, websocket: WebSocket, context_id: str, streams: StreamSessionManager) -> None:
        """Serve one client: forward stream events until it disconnects.

        Client messages: ``"ping"`` (answered with ``"pong"``) and ``"retry"``
        (reopen an errored stream).
        """
        await websocket.accept()
        queue: asyncio.Queue[StreamEvent] = asyncio.Queue()

        try:
            handle = await streams.ensure_connected(context_id, queue.put_nowait)
        except RuntimeError as e:
            await websocket.close(code=1011, reason=str(e))
            return

        self._connections.setdefault(context_id, set()).add(websocket)
        log.debug(f"Dashboard client connected for context {context_id}")
        pump: asyncio.Task[None] | None = None
        try:
            await websocket.send_json({
                "type": "init",
                "context_id": context_id,
                "state": handle.state.value,
                "history": streams.messages(context_id),
            })
            # Events queued while the init frame was sent follow it
            pump = asyncio.create_task(self._pump(websocket, queue))
            while True:
                data = await websocket.receive_text()
                if data == "ping":
                    await websocket.send_text("pong")
                elif data == "retry":
                    await handle.retry()
        except WebSocketDisconnect:
            pass
        finally:
            if pump is not None:
                pump.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await pump
            await handle.dispose()
            self._discard(websocket, context_id)
            log.debug(f"Dashboard client disconnected from context {context_id}")

    async def _pump(self, websocket: WebSocket, queue: asyncio.Queue[StreamEvent]) -> None:
        while True:
            event = await queue.get()
            message: dict[str, Any] = {"type": "event", **event.to_dict()}
            try:
                await websocket.send_json(message)
            except Exception as e:
                log.debug(f"Dropping dashboard client after send failure: {e}")
                return

    def _discard(self, websocket: WebSocket, context_id: str) -> None:
        sockets = self._connections.get(context_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self._connections[context_id]

    def get_connection_count(self, context_id: str | None = None) -> int:
        if context_id:
            return len(self._connections.get(context_id, set()))
        return sum(len(conns) for conns in self._connections.values())

    async def close_all(self, reason: str = "Server shutting down") -> None:
        """Close all WebSocket connections gracefully."""
        all_connections = [ws for conns in self._connections.values() for ws in conns]
        self._connections.clear()

        for websocket in all_connections:
            with contextlib.suppress(Exception):
                await websocket.close(code=1001, reason=reason)
        log.info(f"Closed {len(all_connections)} dashboard connections")
