"""Exception taxonomy for the coordination layer.

Registry misuse (UnknownTab, InvalidParent) is raised synchronously to the
caller. Stream failures travel as state events and are never raised from
dispatch. Tool failures are raised into the awaiting caller only.
"""

from __future__ import annotations


class ContextSyncError(Exception):
    """Base class for all contextsync errors."""


class UnknownTab(ContextSyncError, KeyError):
    """Raised when a tab id does not reference an open tab."""

    def __init__(self, tab_id: str) -> None:
        self.tab_id = tab_id
        super().__init__(f"Unknown tab: {tab_id}")

    def __str__(self) -> str:
        # KeyError would repr() the message
        return self.args[0]


class InvalidParent(ContextSyncError, ValueError):
    """Raised when a parent tab id does not reference an open tab."""

    def __init__(self, parent_id: str) -> None:
        self.parent_id = parent_id
        super().__init__(f"Parent tab does not exist: {parent_id}")


class StreamError(ContextSyncError):
    """Transport-level failure of a context's push stream."""

    _label = "Stream error"

    def __init__(self, context_id: str, detail: str | None = None) -> None:
        self.context_id = context_id
        self.detail = detail
        message = f"{self._label} for context '{context_id}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class StreamClosed(StreamError):
    """The server or the session closed a context's push stream."""

    _label = "Stream closed"


class ToolExecutionError(ContextSyncError):
    """The executor reported a failure for an invocation."""

    def __init__(
        self,
        message: str,
        correlation_id: str | None = None,
        server_key: str | None = None,
        tool_name: str | None = None,
    ) -> None:
        self.message = message
        self.correlation_id = correlation_id
        self.server_key = server_key
        self.tool_name = tool_name
        super().__init__(message)


class ToolTimeout(ContextSyncError, TimeoutError):
    """No executor response arrived before the invocation deadline."""

    def __init__(
        self,
        correlation_id: str,
        server_key: str,
        tool_name: str,
        timeout: float,
    ) -> None:
        self.correlation_id = correlation_id
        self.server_key = server_key
        self.tool_name = tool_name
        self.timeout = timeout
        super().__init__(
            f"Tool {server_key}.{tool_name} timed out after {timeout:g}s "
            f"(correlation {correlation_id})"
        )
