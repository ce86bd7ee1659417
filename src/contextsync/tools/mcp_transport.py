"""Client transports for configured MCP tool servers."""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, AsyncContextManager

if TYPE_CHECKING:
    from contextsync.config.schema import MCPServerConfig

TransportContext = AsyncContextManager[tuple[Any, ...]]


def _expand(value: str) -> str:
    if value.startswith("${") and value.endswith("}"):
        return os.environ.get(value[2:-1], "")
    return value


def expand_env_vars(env: dict[str, str]) -> dict[str, str]:
    """Resolve whole-value ``${VAR}`` references against the process environment."""
    return {key: _expand(value) for key, value in env.items()}


def _require(config: MCPServerConfig, field_name: str) -> None:
    if not getattr(config, field_name):
        raise ValueError(f"{config.transport} transport requires '{field_name}' for server '{config.name}'")


def _headers(config: MCPServerConfig) -> dict[str, str] | None:
    # Headers whose variable is unset are left out
    headers = {key: value for key, value in expand_env_vars(config.headers).items() if value}
    return headers or None


def _stdio(config: MCPServerConfig) -> TransportContext:
    _require(config, "command")
    from mcp.client.stdio import StdioServerParameters, stdio_client

    program, *arguments = config.command
    params = StdioServerParameters(
        command=program,
        args=[*arguments, *config.args],
        env={**os.environ, **expand_env_vars(config.env)},
    )
    return stdio_client(params)


def _streamable_http(config: MCPServerConfig) -> TransportContext:
    _require(config, "url")
    from mcp.client.streamable_http import streamablehttp_client

    return streamablehttp_client(config.url, headers=_headers(config))


def _sse(config: MCPServerConfig) -> TransportContext:
    _require(config, "url")
    from mcp.client.sse import sse_client

    return sse_client(config.url, headers=_headers(config), timeout=config.timeout)


_BUILDERS: dict[str, Callable[[MCPServerConfig], TransportContext]] = {
    "stdio": _stdio,
    "streamable-http": _streamable_http,
    "sse": _sse,
}


def create_transport(config: MCPServerConfig) -> TransportContext:
    """Build the client transport for one server.

    The result is entered with ``async with`` and yields the read and write
    streams for ``mcp.ClientSession``.

    Raises:
        ValueError: For an unknown transport or a missing ``command``/``url``.
    """
    builder = _BUILDERS.get(config.transport)
    if builder is None:
        raise ValueError(f"Unknown transport: {config.transport}")
    return builder(config)
