"""Shared test doubles for contextsync tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from contextsync.streams import TransportEvent, TransportEventKind, TransportSink
from contextsync.tools import ResponseSink, ToolRequest, ToolResponse


class FakeTransport:
    """In-memory push transport.

    Handles are ``"<context_id>#<n>"`` strings so tests can tell repeated
    opens of one context apart.
    """

    def __init__(
        self,
        fail_on: set[str] | None = None,
        greeting: Any = None,
        close_delay: float = 0.0,
    ) -> None:
        self.sink: TransportSink | None = None
        self.opened: list[str] = []
        self.closed: list[str] = []
        self.fail_on = fail_on or set()
        self.greeting = greeting
        self.close_delay = close_delay
        self.gate: asyncio.Event | None = None

    def bind(self, sink: TransportSink) -> None:
        self.sink = sink

    async def open(self, context_id: str) -> str:
        self.opened.append(context_id)
        handle = f"{context_id}#{len(self.opened)}"
        if self.gate is not None:
            await self.gate.wait()
        if context_id in self.fail_on:
            raise ConnectionError("connection refused")
        if self.greeting is not None:
            asyncio.get_running_loop().call_soon(self.push, context_id, self.greeting)
        return handle

    async def close(self, handle: str) -> None:
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        self.closed.append(handle)

    def push(self, context_id: str, payload: Any) -> None:
        assert self.sink is not None
        self.sink(TransportEvent(context_id, payload=payload))

    def fail(self, context_id: str, detail: str = "connection reset") -> None:
        assert self.sink is not None
        self.sink(TransportEvent(context_id, kind=TransportEventKind.ERROR, detail=detail))

    def hang_up(self, context_id: str, detail: str = "server closed") -> None:
        assert self.sink is not None
        self.sink(TransportEvent(context_id, kind=TransportEventKind.CLOSED, detail=detail))


class FakeExecutor:
    """Executor that records requests and answers only when told to."""

    def __init__(self, refuse: bool = False) -> None:
        self.sink: ResponseSink | None = None
        self.requests: list[ToolRequest] = []
        self.refuse = refuse

    def bind(self, sink: ResponseSink) -> None:
        self.sink = sink

    def send(self, request: ToolRequest) -> None:
        if self.refuse:
            raise ConnectionError("executor unavailable")
        self.requests.append(request)

    def respond(self, correlation_id: str, result: Any = None, error: str | None = None) -> None:
        assert self.sink is not None
        self.sink(ToolResponse(correlation_id, result=result, error=error))


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the event loop until ``predicate()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)
