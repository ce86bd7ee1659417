"""Tool executor backed by MCP server connections."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from mcp import types
from mcp.client.session import ClientSession

from contextsync.config.schema import MCPConfig, MCPServerConfig
from contextsync.errors import ToolExecutionError
from contextsync.tools.mcp_transport import create_transport
from contextsync.tools.types import ResponseSink, ToolRequest, ToolResponse

_log = logging.getLogger("contextsync.tools.mcp")

DEFAULT_SERVER_KEY = "default"


class ServerStatus(Enum):
    """Status of an MCP server connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


def normalize_arguments(args: Any) -> dict[str, Any]:
    """Coerce tool arguments to a JSON object.

    Strings are parsed as JSON; anything that is not an object becomes ``{}``.
    """
    if isinstance(args, str):
        try:
            args = json.loads(args)
        except ValueError:
            return {}
    if not isinstance(args, dict):
        return {}
    return args


def convert_content(blocks: list[Any]) -> list[dict[str, Any]]:
    """Convert MCP content blocks to plain dicts."""
    content: list[dict[str, Any]] = []
    for block in blocks:
        if isinstance(block, types.TextContent):
            content.append({"type": "text", "text": block.text})
        elif isinstance(block, types.ImageContent):
            content.append({"type": "image", "data": block.data, "mime_type": block.mimeType})
        elif isinstance(block, types.EmbeddedResource):
            res = block.resource
            content.append({
                "type": "resource",
                "uri": str(res.uri) if hasattr(res, "uri") else None,
                "text": res.text if hasattr(res, "text") else None,
            })
    return content


@dataclass
class MCPServerConnection:
    """A live client session to one MCP server."""

    name: str
    config: MCPServerConfig
    session: ClientSession | None = None
    status: ServerStatus = ServerStatus.DISCONNECTED
    tools: list[str] = field(default_factory=list)
    error_message: str | None = None
    _transport_context: Any = None

    async def connect(self) -> None:
        """Open the transport, initialize the session and list tools."""
        self.status = ServerStatus.CONNECTING
        try:
            self._transport_context = create_transport(self.config)
            streams = await self._transport_context.__aenter__()
            read_stream, write_stream = streams[0], streams[1]

            self.session = ClientSession(read_stream, write_stream)
            await self.session.__aenter__()
            await self.session.initialize()

            tools_result = await self.session.list_tools()
            self.tools = [t.name for t in tools_result.tools]

            self.status = ServerStatus.CONNECTED
            self.error_message = None
            _log.info(f"Connected to MCP server '{self.name}' with {len(self.tools)} tools")

        except Exception as e:
            self.status = ServerStatus.ERROR
            self.error_message = str(e)
            _log.error(f"Failed to connect to MCP server '{self.name}': {e}")
            await self._close_quietly()
            raise

    async def disconnect(self) -> None:
        await self._close_quietly()
        self.status = ServerStatus.DISCONNECTED
        self.tools = []
        _log.info(f"Disconnected from MCP server '{self.name}'")

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Call a tool and return its content as plain data.

        Raises:
            ToolExecutionError: If the server is not connected or the tool reports an error.
        """
        if not self.session or self.status != ServerStatus.CONNECTED:
            raise ToolExecutionError(
                f"Server '{self.name}' is not connected", server_key=self.name, tool_name=tool_name
            )

        result = await self.session.call_tool(tool_name, arguments)
        content = convert_content(result.content)
        if result.isError:
            message = "\n".join(c["text"] for c in content if c.get("type") == "text")
            raise ToolExecutionError(
                message or f"Tool {self.name}.{tool_name} reported an error",
                server_key=self.name,
                tool_name=tool_name,
            )
        return {
            "content": content,
            "structured_content": result.structuredContent,
        }

    async def _close_quietly(self) -> None:
        if self.session:
            try:
                await self.session.__aexit__(None, None, None)
            except Exception as e:
                _log.warning(f"Error closing session for '{self.name}': {e}")
            self.session = None
        if self._transport_context:
            try:
                await self._transport_context.__aexit__(None, None, None)
            except Exception as e:
                _log.warning(f"Error closing transport for '{self.name}': {e}")
            self._transport_context = None


class MCPToolExecutor:
    """Runs tool requests against MCP servers and reports back by correlation id.

    ``send`` returns immediately; the call runs as a task and its outcome is
    pushed into the bound sink. Configured servers are connected on first
    use. The server key ``"default"`` routes to the first connected server.
    """

    def __init__(self, config: MCPConfig | None = None, auto_connect: bool = True) -> None:
        self._config = config or MCPConfig()
        self._auto_connect = auto_connect
        self._connections: dict[str, MCPServerConnection] = {}
        self._sink: ResponseSink | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._connect_lock = asyncio.Lock()

    def bind(self, sink: ResponseSink) -> None:
        self._sink = sink

    def send(self, request: ToolRequest) -> None:
        task = asyncio.get_running_loop().create_task(
            self._execute(request), name=f"tool-{request.correlation_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def connect(self, name: str, config: MCPServerConfig | None = None) -> MCPServerConnection:
        """Connect to a server by name (from config) or with an explicit config.

        Raises:
            ValueError: If the server is not configured.
        """
        existing = self._connections.get(name)
        if existing and existing.status == ServerStatus.CONNECTED:
            return existing

        config = config or self._config.get_server(name)
        if config is None:
            raise ValueError(f"MCP server '{name}' not found in config")

        if existing:
            await existing.disconnect()

        connection = MCPServerConnection(name=name, config=config)
        self._connections[name] = connection
        await connection.connect()
        return connection

    async def disconnect(self, name: str) -> None:
        connection = self._connections.pop(name, None)
        if connection:
            await connection.disconnect()

    async def disconnect_all(self) -> None:
        for name in list(self._connections):
            await self.disconnect(name)

    async def close(self) -> None:
        """Cancel in-flight calls and disconnect every server."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.disconnect_all()

    def get_connection(self, name: str) -> MCPServerConnection | None:
        return self._connections.get(name)

    def list_connections(self) -> list[MCPServerConnection]:
        return list(self._connections.values())

    async def _resolve(self, server_key: str) -> MCPServerConnection:
        if server_key == DEFAULT_SERVER_KEY:
            for connection in self._connections.values():
                if connection.status == ServerStatus.CONNECTED:
                    return connection
            if self._auto_connect and self._config.servers:
                server_key = self._config.servers[0].name
            else:
                raise LookupError("No active MCP client found for the default server")

        connection = self._connections.get(server_key)
        if connection and connection.status == ServerStatus.CONNECTED:
            return connection

        if not self._auto_connect or self._config.get_server(server_key) is None:
            raise LookupError(f"No active MCP client found for server: {server_key}")

        async with self._connect_lock:
            return await self.connect(server_key)

    async def _execute(self, request: ToolRequest) -> None:
        try:
            connection = await self._resolve(request.server_key)
            payload = await connection.call_tool(request.tool_name, normalize_arguments(request.args))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            _log.error(f"Tool call failed: {request.server_key}.{request.tool_name}: {e}")
            self._emit(ToolResponse(request.correlation_id, error=str(e) or type(e).__name__))
            return
        self._emit(ToolResponse(request.correlation_id, result=payload))

    def _emit(self, response: ToolResponse) -> None:
        if self._sink is None:
            _log.error(f"No response sink bound; dropping response {response.correlation_id}")
            return
        self._sink(response)
