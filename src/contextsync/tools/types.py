"""Tool invocation type definitions and the executor contract."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class InvocationState(Enum):
    """Lifecycle state of a tool invocation."""

    PENDING = "pending"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    TIMED_OUT = "timed_out"

    @property
    def finished(self) -> bool:
        return self is not InvocationState.PENDING


@dataclass(slots=True)
class ToolRequest:
    """What is sent to the executor."""

    correlation_id: str
    server_key: str
    tool_name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ToolResponse:
    """What the executor sends back: a result or an error message."""

    correlation_id: str
    result: Any = None
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class ToolInvocation:
    """A pending or finished tool call, tracked by correlation id."""

    correlation_id: str
    server_key: str
    tool_name: str
    args: dict[str, Any]
    deadline: float  # Event-loop time
    timeout: float
    state: InvocationState = InvocationState.PENDING
    created_at: float = 0.0
    finished_at: float | None = None
    error: str | None = None
    future: asyncio.Future[Any] | None = field(default=None, repr=False)
    timer: asyncio.TimerHandle | None = field(default=None, repr=False)

    def to_request(self) -> ToolRequest:
        return ToolRequest(
            correlation_id=self.correlation_id,
            server_key=self.server_key,
            tool_name=self.tool_name,
            args=self.args,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "server_key": self.server_key,
            "tool_name": self.tool_name,
            "state": self.state.value,
            "timeout": self.timeout,
            "deadline": self.deadline,
            "error": self.error,
        }


ResponseSink = Callable[[ToolResponse], None]
InvocationListener = Callable[[ToolInvocation], None]


@runtime_checkable
class ToolExecutor(Protocol):
    """Privileged executor that runs tools on behalf of the client.

    Responses may arrive in any order relative to ``send`` calls; the
    correlation id is the only demultiplexing key.
    """

    def bind(self, sink: ResponseSink) -> None:
        """Install the callable that receives every response."""
        ...

    def send(self, request: ToolRequest) -> None:
        """Issue a request without waiting for its outcome."""
        ...
