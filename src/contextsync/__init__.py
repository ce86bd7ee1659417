"""contextsync: context-scoped session coordination for multi-tab chat clients."""

__version__ = "0.1.0"

# Public API
from contextsync.config import Config, get_config, load_config
from contextsync.context import Context, ContextType
from contextsync.errors import (
    ContextSyncError,
    InvalidParent,
    StreamClosed,
    StreamError,
    ToolExecutionError,
    ToolTimeout,
    UnknownTab,
)
from contextsync.notifications import (
    InMemoryUnreadStore,
    NotificationCoordinator,
    NotificationState,
    UnreadStore,
)
from contextsync.session import CoordinationSession
from contextsync.streams import (
    StreamEvent,
    StreamEventKind,
    StreamSessionManager,
    StreamState,
    StreamTransport,
    SubscriptionHandle,
    TransportEvent,
    TransportEventKind,
)
from contextsync.tabs import Tab, TabRegistry
from contextsync.tools import (
    InvocationState,
    MCPToolExecutor,
    ToolExecutor,
    ToolInvocation,
    ToolInvocationBridge,
    ToolRequest,
    ToolResponse,
)

__all__ = [
    # Session
    "CoordinationSession",
    # Context identity
    "Context",
    "ContextType",
    # Config
    "Config",
    "load_config",
    "get_config",
    # Errors
    "ContextSyncError",
    "InvalidParent",
    "StreamClosed",
    "StreamError",
    "ToolExecutionError",
    "ToolTimeout",
    "UnknownTab",
    # Tabs
    "Tab",
    "TabRegistry",
    # Streams
    "StreamEvent",
    "StreamEventKind",
    "StreamSessionManager",
    "StreamState",
    "StreamTransport",
    "SubscriptionHandle",
    "TransportEvent",
    "TransportEventKind",
    # Notifications
    "InMemoryUnreadStore",
    "NotificationCoordinator",
    "NotificationState",
    "UnreadStore",
    # Tools
    "InvocationState",
    "MCPToolExecutor",
    "ToolExecutor",
    "ToolInvocation",
    "ToolInvocationBridge",
    "ToolRequest",
    "ToolResponse",
]
