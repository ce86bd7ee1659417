"""Configuration schema dataclasses for contextsync.

Defines the structure of configuration at all levels (system, user, project).
All fields have defaults so partial configs merge together.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # TRACE, DEBUG, VERBOSE, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, overrides level
    file: str | None = None  # Log file path


@dataclass
class StreamsConfig:
    """Push-stream session configuration.

    Example config.yaml:
        streams:
          history_limit: 200
          close_timeout: 5.0
    """

    history_limit: int = 100  # Recent payloads kept per context (0 disables)
    close_timeout: float = 5.0  # Seconds to wait for a transport close


@dataclass
class ToolsConfig:
    """Tool invocation bridge configuration."""

    default_timeout: float = 60.0  # Seconds before an invocation times out
    finished_memory: int = 256  # Finished correlation ids remembered for late replies


@dataclass
class DashboardConfig:
    """Read-only dashboard server configuration."""

    host: str = "127.0.0.1"
    port: int = 8765


@dataclass
class MCPServerConfig:
    """Configuration for a single MCP tool server.

    Supports three transport types:
        - stdio: Spawns a subprocess (requires command)
        - streamable-http: Connects to HTTP endpoint (requires url)
        - sse: Connects to SSE endpoint (requires url)
    """

    name: str  # Server key used by invoke() (e.g., "github")
    command: list[str] | None = None  # For stdio: ["npx", "-y", "@mcp/server"]
    args: list[str] = field(default_factory=list)  # Additional command args
    env: dict[str, str] = field(default_factory=dict)  # Environment vars (supports ${VAR})
    url: str | None = None  # For streamable-http/sse
    headers: dict[str, str] = field(default_factory=dict)  # HTTP headers for sse/http
    transport: str = "stdio"  # "stdio", "streamable-http", or "sse"
    timeout: float = 30.0  # Connection timeout in seconds


@dataclass
class MCPConfig:
    """MCP tool servers available to the executor.

    Example config.yaml:
        mcp:
          servers:
            - name: github
              command: ["npx", "-y", "@modelcontextprotocol/server-github"]
              env:
                GITHUB_TOKEN: "${GITHUB_TOKEN}"
    """

    servers: list[MCPServerConfig] = field(default_factory=list)

    def get_server(self, name: str) -> MCPServerConfig | None:
        for server in self.servers:
            if server.name == name:
                return server
        return None


@dataclass
class Config:
    """Root configuration object."""

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    streams: StreamsConfig = field(default_factory=StreamsConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    mcp: MCPConfig = field(default_factory=MCPConfig)

    # Extension point for future config sections
    extra: dict[str, Any] = field(default_factory=dict)
