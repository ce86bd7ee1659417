"""Tests for the MCP-backed tool executor and its transport factory."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest
from mcp import types

from contextsync.config.schema import MCPConfig, MCPServerConfig
from contextsync.errors import ToolExecutionError
from contextsync.tools import (
    MCPServerConnection,
    MCPToolExecutor,
    ServerStatus,
    ToolInvocationBridge,
    ToolRequest,
    ToolResponse,
    normalize_arguments,
)
from contextsync.tools.mcp_executor import convert_content
from contextsync.tools.mcp_transport import create_transport, expand_env_vars


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def server_config() -> MCPServerConfig:
    return MCPServerConfig(name="github", transport="stdio", command=["github-mcp"])


def call_result(text: str, is_error: bool = False, structured: dict | None = None) -> Mock:
    return Mock(
        content=[types.TextContent(type="text", text=text)],
        isError=is_error,
        structuredContent=structured,
    )


def connected(name: str, config: MCPServerConfig | None = None, result: Mock | None = None) -> MCPServerConnection:
    """Build a connection that looks connected, with a mocked session."""
    connection = MCPServerConnection(name=name, config=config or MCPServerConfig(name=name, command=["x"]))
    connection.status = ServerStatus.CONNECTED
    connection.session = MagicMock()
    connection.session.call_tool = AsyncMock(return_value=result or call_result("ok"))
    return connection


async def drain(executor: MCPToolExecutor) -> None:
    if executor._tasks:
        await asyncio.gather(*list(executor._tasks))


# =============================================================================
# Argument and content conversion
# =============================================================================


class TestNormalizeArguments:
    def test_dict_passes_through(self) -> None:
        assert normalize_arguments({"a": 1}) == {"a": 1}

    def test_json_string_parsed(self) -> None:
        assert normalize_arguments('{"path": "/tmp"}') == {"path": "/tmp"}

    @pytest.mark.parametrize("value", ["not json", "[1, 2]", [1, 2], None, 42])
    def test_non_objects_become_empty(self, value) -> None:
        assert normalize_arguments(value) == {}


class TestConvertContent:
    def test_text_and_image(self) -> None:
        blocks = [
            types.TextContent(type="text", text="hello"),
            types.ImageContent(type="image", data="aGk=", mimeType="image/png"),
        ]

        assert convert_content(blocks) == [
            {"type": "text", "text": "hello"},
            {"type": "image", "data": "aGk=", "mime_type": "image/png"},
        ]


# =============================================================================
# MCPServerConnection
# =============================================================================


class TestMCPServerConnection:
    def test_initial_state(self, server_config: MCPServerConfig) -> None:
        connection = MCPServerConnection(name="github", config=server_config)

        assert connection.status == ServerStatus.DISCONNECTED
        assert connection.session is None
        assert connection.tools == []

    async def test_call_tool_requires_connection(self, server_config: MCPServerConfig) -> None:
        connection = MCPServerConnection(name="github", config=server_config)

        with pytest.raises(ToolExecutionError, match="not connected"):
            await connection.call_tool("list_repos", {})

    async def test_call_tool_returns_content(self) -> None:
        connection = connected("github", result=call_result("two repos", structured={"count": 2}))

        payload = await connection.call_tool("list_repos", {"org": "acme"})

        connection.session.call_tool.assert_awaited_once_with("list_repos", {"org": "acme"})
        assert payload == {
            "content": [{"type": "text", "text": "two repos"}],
            "structured_content": {"count": 2},
        }

    async def test_tool_error_raises(self) -> None:
        connection = connected("github", result=call_result("rate limited", is_error=True))

        with pytest.raises(ToolExecutionError, match="rate limited"):
            await connection.call_tool("list_repos", {})

    async def test_connect_failure_sets_error(self, server_config: MCPServerConfig) -> None:
        connection = MCPServerConnection(name="github", config=server_config)

        with patch(
            "contextsync.tools.mcp_executor.create_transport",
            side_effect=ValueError("bad config"),
        ):
            with pytest.raises(ValueError):
                await connection.connect()

        assert connection.status == ServerStatus.ERROR
        assert connection.error_message == "bad config"

    async def test_disconnect_closes_session(self) -> None:
        connection = connected("github")
        session = connection.session
        session.__aexit__ = AsyncMock(return_value=None)

        await connection.disconnect()

        session.__aexit__.assert_awaited_once()
        assert connection.status == ServerStatus.DISCONNECTED
        assert connection.session is None


# =============================================================================
# MCPToolExecutor
# =============================================================================


class TestMCPToolExecutor:
    async def test_send_reports_result_by_correlation_id(self) -> None:
        executor = MCPToolExecutor()
        responses: list[ToolResponse] = []
        executor.bind(responses.append)
        executor._connections["github"] = connected("github")

        executor.send(ToolRequest("c-1", "github", "list_repos", {"org": "acme"}))
        await drain(executor)

        assert len(responses) == 1
        assert responses[0].correlation_id == "c-1"
        assert responses[0].result["content"] == [{"type": "text", "text": "ok"}]
        assert not responses[0].failed

    async def test_default_routes_to_first_connected(self) -> None:
        executor = MCPToolExecutor()
        responses: list[ToolResponse] = []
        executor.bind(responses.append)
        first = connected("first")
        executor._connections["first"] = first
        executor._connections["second"] = connected("second")

        executor.send(ToolRequest("c-1", "default", "ping"))
        await drain(executor)

        first.session.call_tool.assert_awaited_once_with("ping", {})
        assert not responses[0].failed

    async def test_unknown_server_reports_error(self) -> None:
        executor = MCPToolExecutor(auto_connect=False)
        responses: list[ToolResponse] = []
        executor.bind(responses.append)

        executor.send(ToolRequest("c-1", "nowhere", "ping"))
        await drain(executor)

        assert responses[0].error == "No active MCP client found for server: nowhere"

    async def test_default_without_servers_reports_error(self) -> None:
        executor = MCPToolExecutor()
        responses: list[ToolResponse] = []
        executor.bind(responses.append)

        executor.send(ToolRequest("c-1", "default", "ping"))
        await drain(executor)

        assert responses[0].failed
        assert "default" in responses[0].error

    async def test_tool_failure_reported(self) -> None:
        executor = MCPToolExecutor()
        responses: list[ToolResponse] = []
        executor.bind(responses.append)
        executor._connections["github"] = connected("github", result=call_result("boom", is_error=True))

        executor.send(ToolRequest("c-9", "github", "explode"))
        await drain(executor)

        assert responses[0].correlation_id == "c-9"
        assert responses[0].error == "boom"

    async def test_configured_server_connected_lazily(self, server_config: MCPServerConfig) -> None:
        executor = MCPToolExecutor(MCPConfig(servers=[server_config]))
        responses: list[ToolResponse] = []
        executor.bind(responses.append)
        session = MagicMock()
        session.call_tool = AsyncMock(return_value=call_result("lazy"))
        connects: list[str] = []

        async def fake_connect(self: MCPServerConnection) -> None:
            connects.append(self.name)
            self.session = session
            self.status = ServerStatus.CONNECTED

        with patch.object(MCPServerConnection, "connect", new=fake_connect):
            executor.send(ToolRequest("c-1", "default", "ping"))
            executor.send(ToolRequest("c-2", "github", "ping"))
            await drain(executor)

        assert connects == ["github"]
        assert [r.failed for r in responses] == [False, False]
        assert executor.get_connection("github") is not None

    async def test_connect_unknown_server_raises(self) -> None:
        executor = MCPToolExecutor()

        with pytest.raises(ValueError, match="not found in config"):
            await executor.connect("missing")

    async def test_close_disconnects_all(self) -> None:
        executor = MCPToolExecutor()
        connection = connected("github")
        connection.disconnect = AsyncMock()
        executor._connections["github"] = connection

        await executor.close()

        connection.disconnect.assert_awaited_once()
        assert executor.list_connections() == []

    async def test_drives_invocation_bridge(self) -> None:
        executor = MCPToolExecutor()
        executor._connections["github"] = connected("github", result=call_result("done"))
        bridge = ToolInvocationBridge(executor)

        result = await bridge.invoke("github", "list_repos", {"org": "acme"}, timeout=1.0)

        assert result["content"] == [{"type": "text", "text": "done"}]


# =============================================================================
# Transport factory
# =============================================================================


class TestExpandEnvVars:
    def test_expand_and_literal(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOKEN", "secret")
        monkeypatch.delenv("MISSING_VAR", raising=False)

        result = expand_env_vars({"A": "${TOKEN}", "B": "${MISSING_VAR}", "C": "$TOKEN"})

        assert result == {"A": "secret", "B": "", "C": "$TOKEN"}


class TestCreateTransport:
    def test_stdio_requires_command(self) -> None:
        with pytest.raises(ValueError, match="requires 'command'"):
            create_transport(MCPServerConfig(name="t", transport="stdio"))

    @pytest.mark.parametrize("transport", ["sse", "streamable-http"])
    def test_http_transports_require_url(self, transport: str) -> None:
        with pytest.raises(ValueError, match="requires 'url'"):
            create_transport(MCPServerConfig(name="t", transport=transport))

    def test_unknown_transport(self) -> None:
        with pytest.raises(ValueError, match="Unknown transport"):
            create_transport(MCPServerConfig(name="t", transport="carrier-pigeon"))

    def test_stdio_creates_client(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SECRET", "s3cret")
        config = MCPServerConfig(
            name="t",
            command=["python", "-m", "server"],
            args=["--port", "8080"],
            env={"API_KEY": "${SECRET}"},
        )

        mock_client = MagicMock()
        with patch("mcp.client.stdio.stdio_client", return_value=mock_client) as mock_stdio:
            result = create_transport(config)

        params = mock_stdio.call_args[0][0]
        assert params.command == "python"
        assert params.args == ["-m", "server", "--port", "8080"]
        assert params.env["API_KEY"] == "s3cret"
        assert result is mock_client

    def test_streamable_http_creates_client(self) -> None:
        config = MCPServerConfig(name="t", transport="streamable-http", url="http://localhost:8080/mcp")

        with patch("mcp.client.streamable_http.streamablehttp_client") as mock_http:
            create_transport(config)

        mock_http.assert_called_once_with("http://localhost:8080/mcp", headers=None)
