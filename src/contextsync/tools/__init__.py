"""Tool invocation support.

The bridge correlates calls with executor responses; the MCP executor is a
concrete executor that runs tools on MCP servers:

    executor = MCPToolExecutor(config.mcp)
    bridge = ToolInvocationBridge(executor, config.tools)
    result = await bridge.invoke("github", "list_repos", {})
"""

from contextsync.tools.bridge import ToolInvocationBridge
from contextsync.tools.mcp_executor import (
    MCPServerConnection,
    MCPToolExecutor,
    ServerStatus,
    normalize_arguments,
)
from contextsync.tools.types import (
    InvocationListener,
    InvocationState,
    ResponseSink,
    ToolExecutor,
    ToolInvocation,
    ToolRequest,
    ToolResponse,
)

__all__ = [
    # Bridge
    "ToolInvocationBridge",
    # MCP executor
    "MCPServerConnection",
    "MCPToolExecutor",
    "ServerStatus",
    "normalize_arguments",
    # Types
    "InvocationListener",
    "InvocationState",
    "ResponseSink",
    "ToolExecutor",
    "ToolInvocation",
    "ToolRequest",
    "ToolResponse",
]
