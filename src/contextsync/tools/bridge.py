"""Tool invocation bridge: correlated requests to an external executor."""

from __future__ import annotations

import asyncio
import uuid
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from contextsync.config.schema import ToolsConfig
from contextsync.errors import ToolExecutionError, ToolTimeout
from contextsync.logging import VERBOSE, get_logger
from contextsync.tools.types import (
    InvocationListener,
    InvocationState,
    ToolExecutor,
    ToolInvocation,
    ToolResponse,
)

log = get_logger("tools")


class ToolInvocationBridge:
    """Issues tool calls to an executor and matches responses by correlation id.

    Each call gets a fresh correlation id and a deadline. The first of
    response, failure or deadline settles the call; anything arriving for
    a settled id afterwards is discarded.

    Example:
        ```python
        bridge = ToolInvocationBridge(executor)
        repos = await bridge.invoke("github", "list_repos", {}, timeout=10.0)
        ```
    """

    def __init__(
        self,
        executor: ToolExecutor,
        config: ToolsConfig | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._executor = executor
        self._config = config or ToolsConfig()
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._pending: dict[str, ToolInvocation] = {}
        # Recently settled ids, so late responses can be told from bogus ones
        self._finished: OrderedDict[str, InvocationState] = OrderedDict()
        self._listeners: list[InvocationListener] = []
        self._closed = False
        executor.bind(self.handle_response)

    @property
    def closed(self) -> bool:
        return self._closed

    async def invoke(
        self,
        server_key: str,
        tool_name: str,
        args: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Run ``tool_name`` on ``server_key`` and return its result.

        Args:
            server_key: Executor-side server name.
            tool_name: Tool to call.
            args: Tool arguments.
            timeout: Seconds to wait; defaults to ``tools.default_timeout``.

        Raises:
            ToolExecutionError: The executor reported a failure, or the bridge is closed.
            ToolTimeout: No response arrived before the deadline.
        """
        if self._closed:
            raise ToolExecutionError(
                "Tool bridge is closed", server_key=server_key, tool_name=tool_name
            )
        if timeout is None:
            timeout = self._config.default_timeout
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")

        loop = asyncio.get_running_loop()
        now = loop.time()
        future: asyncio.Future[Any] = loop.create_future()
        invocation = ToolInvocation(
            correlation_id=self._new_correlation_id(),
            server_key=server_key,
            tool_name=tool_name,
            args=dict(args or {}),
            deadline=now + timeout,
            timeout=timeout,
            created_at=now,
            future=future,
        )
        self._pending[invocation.correlation_id] = invocation
        invocation.timer = loop.call_at(invocation.deadline, self._expire, invocation.correlation_id)
        log.log(
            VERBOSE,
            f"Invoking {server_key}.{tool_name} as {invocation.correlation_id} (timeout {timeout:g}s)",
        )
        self._notify(invocation)

        try:
            self._executor.send(invocation.to_request())
        except Exception as e:
            log.error(f"Executor refused {server_key}.{tool_name}: {e}")
            self._settle(invocation, InvocationState.REJECTED, error=str(e) or type(e).__name__)

        try:
            return await future
        except asyncio.CancelledError:
            if invocation.state is InvocationState.PENDING:
                # Abandoned by the caller: forget it locally, the executor is not told
                log.info(f"Invocation {invocation.correlation_id} abandoned by caller")
                self._settle(invocation, InvocationState.REJECTED, error="cancelled by caller")
            raise

    def handle_response(self, response: ToolResponse) -> None:
        """Settle the invocation matching ``response.correlation_id``."""
        invocation = self._pending.get(response.correlation_id)
        if invocation is None:
            previous = self._finished.get(response.correlation_id)
            if previous is not None:
                log.debug(
                    f"Discarding late response for {previous.value} invocation {response.correlation_id}"
                )
            else:
                log.error(
                    f"Protocol violation: response for unknown correlation id "
                    f"{response.correlation_id!r} dropped"
                )
            return

        if response.failed:
            log.warning(
                f"Tool {invocation.server_key}.{invocation.tool_name} failed: {response.error}"
            )
            self._settle(invocation, InvocationState.REJECTED, error=response.error)
        else:
            self._settle(invocation, InvocationState.RESOLVED, result=response.result)

    def close(self) -> None:
        """Reject every pending invocation and refuse new ones."""
        if self._closed:
            return
        self._closed = True
        pending = list(self._pending.values())
        for invocation in pending:
            self._settle(invocation, InvocationState.REJECTED, error="Tool bridge closed")
        if pending:
            log.info(f"Tool bridge closed with {len(pending)} pending invocation(s) rejected")

    def add_listener(self, listener: InvocationListener) -> Callable[[], None]:
        """Register ``listener(invocation)`` for every invocation state change."""
        self._listeners.append(listener)

        def unregister() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unregister

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, correlation_id: str) -> ToolInvocation | None:
        return self._pending.get(correlation_id)

    def pending(self) -> list[ToolInvocation]:
        return list(self._pending.values())

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def finished_state(self, correlation_id: str) -> InvocationState | None:
        return self._finished.get(correlation_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _new_correlation_id(self) -> str:
        correlation_id = self._id_factory()
        while correlation_id in self._pending or correlation_id in self._finished:
            correlation_id = self._id_factory()
        return correlation_id

    def _expire(self, correlation_id: str) -> None:
        invocation = self._pending.get(correlation_id)
        if invocation is None:
            return
        log.warning(
            f"Tool {invocation.server_key}.{invocation.tool_name} timed out after "
            f"{invocation.timeout:g}s ({correlation_id})"
        )
        self._settle(invocation, InvocationState.TIMED_OUT)

    def _settle(
        self,
        invocation: ToolInvocation,
        state: InvocationState,
        result: Any = None,
        error: str | None = None,
    ) -> None:
        self._pending.pop(invocation.correlation_id, None)
        if invocation.timer is not None:
            invocation.timer.cancel()
            invocation.timer = None

        invocation.state = state
        invocation.error = error
        future = invocation.future
        if future is not None:
            invocation.finished_at = future.get_loop().time()
        self._remember(invocation.correlation_id, state)

        if future is not None and not future.done():
            if state is InvocationState.RESOLVED:
                future.set_result(result)
            elif state is InvocationState.TIMED_OUT:
                future.set_exception(
                    ToolTimeout(
                        invocation.correlation_id,
                        invocation.server_key,
                        invocation.tool_name,
                        invocation.timeout,
                    )
                )
            else:
                future.set_exception(
                    ToolExecutionError(
                        error or "Tool execution failed",
                        correlation_id=invocation.correlation_id,
                        server_key=invocation.server_key,
                        tool_name=invocation.tool_name,
                    )
                )
        self._notify(invocation)

    def _remember(self, correlation_id: str, state: InvocationState) -> None:
        self._finished[correlation_id] = state
        while len(self._finished) > max(self._config.finished_memory, 0):
            self._finished.popitem(last=False)

    def _notify(self, invocation: ToolInvocation) -> None:
        for listener in list(self._listeners):
            try:
                listener(invocation)
            except Exception:
                log.exception(f"Invocation listener failed for {invocation.correlation_id}")
