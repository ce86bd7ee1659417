"""Coordination session: owns and wires the per-process coordination state."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

from contextsync.config.schema import Config
from contextsync.context import Context
from contextsync.logging import get_logger
from contextsync.notifications import InMemoryUnreadStore, NotificationCoordinator, UnreadStore
from contextsync.streams import StreamSessionManager, StreamTransport, Subscriber, SubscriptionHandle
from contextsync.tabs import Tab, TabRegistry
from contextsync.tools import ToolExecutor, ToolInvocationBridge

log = get_logger("session")


class CoordinationSession:
    """Explicitly owned coordination state for one client session.

    Builds the tab registry, stream session manager, notification
    coordinator and tool invocation bridge from injected collaborators.
    Lifecycle is ``start()`` on session start and ``close()`` at shutdown
    (also available as ``async with``); ``close()`` is the single place the
    stream subsystem is torn down.

    Example:
        ```python
        async with CoordinationSession(transport, executor) as session:
            tab = session.registry.open_tab(Context(ContextType.ROOM, "r1"))
            await session.watch_tab(tab, on_event)
            result = await session.tools.invoke("github", "list_repos", {})
        ```
    """

    def __init__(
        self,
        transport: StreamTransport,
        executor: ToolExecutor,
        unread_store: UnreadStore | None = None,
        config: Config | None = None,
    ) -> None:
        self._config = config or Config()
        self.unread_store: UnreadStore = unread_store or InMemoryUnreadStore()
        self.registry = TabRegistry()
        self.streams = StreamSessionManager(transport, self._config.streams)
        self.notifications = NotificationCoordinator(self.unread_store)
        self.tools = ToolInvocationBridge(executor, self._config.tools)

        self._tab_handles: dict[str, list[SubscriptionHandle]] = {}
        self._tab_callbacks: dict[str, list[Subscriber]] = {}
        self._tab_generations: dict[str, int] = {}
        self._cleanup: set[asyncio.Task[None]] = set()
        self._started = False
        self._closed = False

    @property
    def config(self) -> Config:
        return self._config

    @property
    def started(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        if self._closed:
            raise RuntimeError("Coordination session already closed")
        if self._started:
            return
        self.notifications.attach(self.registry)
        self.registry.add_close_listener(self._on_tab_closed)
        self.registry.add_rebind_listener(self._on_tab_rebound)
        self._started = True
        log.info("Coordination session started")

    async def close(self) -> None:
        """Tear down tab subscriptions, every stream and pending tool calls."""
        if self._closed:
            return
        self._closed = True
        self.notifications.detach()

        if self._cleanup:
            await asyncio.gather(*self._cleanup, return_exceptions=True)
        handles = [h for hs in self._tab_handles.values() for h in hs]
        self._tab_handles.clear()
        self._tab_callbacks.clear()
        for handle in handles:
            await handle.dispose()

        await self.streams.disconnect_all()
        self.tools.close()
        log.info("Coordination session closed")

    async def __aenter__(self) -> CoordinationSession:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Tab-scoped streams
    # ------------------------------------------------------------------
    async def watch_tab(self, tab_id: str, callback: Subscriber) -> SubscriptionHandle:
        """Subscribe to the live stream of a tab's context for the tab's lifetime.

        The callback follows the tab: when the tab navigates to another
        context, the returned handle is disposed and the callback is
        subscribed to the new context's stream (if it has one). The
        subscription ends when the tab closes (directly or by cascade) or
        when the session closes.

        Raises:
            UnknownTab: If the tab is not open.
            ValueError: If the tab's context has no live stream.
        """
        tab = self.registry.get_tab(tab_id)
        if not tab.context.streamable:
            raise ValueError(f"Context {tab.context} has no live stream")
        generation = self._tab_generations.get(tab_id, 0)
        callbacks = self._tab_callbacks.setdefault(tab_id, [])
        callbacks.append(callback)
        try:
            handle = await self.streams.ensure_connected(tab.context.id, callback)
        except BaseException:
            if callback in callbacks:
                callbacks.remove(callback)
            raise
        if not self._still_bound(tab_id, generation):
            # Closed or navigated away while the connection was opening
            await handle.dispose()
            return handle
        self._tab_handles.setdefault(tab_id, []).append(handle)
        return handle

    def _still_bound(self, tab_id: str, generation: int) -> bool:
        return (
            not self._closed
            and tab_id in self.registry
            and self._tab_generations.get(tab_id, 0) == generation
        )

    def _on_tab_closed(self, tab: Tab) -> None:
        self._tab_callbacks.pop(tab.id, None)
        self._tab_generations.pop(tab.id, None)
        handles = self._tab_handles.pop(tab.id, [])
        if handles:
            self._spawn(self._dispose_all(handles))

    def _on_tab_rebound(self, tab: Tab, previous: Context) -> None:
        generation = self._tab_generations.get(tab.id, 0) + 1
        self._tab_generations[tab.id] = generation
        handles = self._tab_handles.pop(tab.id, [])
        callbacks = list(self._tab_callbacks.get(tab.id, []))
        if not handles and not callbacks:
            return
        log.debug(f"Tab {tab.id} moved from {previous} to {tab.context}; moving {len(callbacks)} watcher(s)")
        self._spawn(self._rebind(tab.id, tab.context, generation, handles, callbacks))

    async def _rebind(
        self,
        tab_id: str,
        context: Context,
        generation: int,
        handles: list[SubscriptionHandle],
        callbacks: list[Subscriber],
    ) -> None:
        if context.streamable:
            for callback in callbacks:
                if not self._still_bound(tab_id, generation):
                    break
                try:
                    handle = await self.streams.ensure_connected(context.id, callback)
                except RuntimeError as e:
                    log.warning(f"Cannot follow tab {tab_id} to {context}: {e}")
                    break
                if not self._still_bound(tab_id, generation):
                    await handle.dispose()
                    break
                self._tab_handles.setdefault(tab_id, []).append(handle)
        # New subscriptions are in place before the old ones are released
        await self._dispose_all(handles)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._cleanup.add(task)
        task.add_done_callback(self._cleanup.discard)

    async def _dispose_all(self, handles: list[SubscriptionHandle]) -> None:
        for handle in handles:
            await handle.dispose()

    # ------------------------------------------------------------------
    # Read-only derived state
    # ------------------------------------------------------------------
    @property
    def selected_context(self) -> Context | None:
        return self.registry.selected_context

    @property
    def active_tab_id(self) -> str | None:
        return self.registry.active_tab_id

    def snapshot(self) -> dict[str, Any]:
        selected = self.selected_context
        return {
            "active_tab_id": self.active_tab_id,
            "selected_context": selected.to_dict() if selected else None,
            "tabs": self.registry.to_list(),
            "streams": self.streams.connections(),
            "pending_invocations": [inv.to_dict() for inv in self.tools.pending()],
        }
