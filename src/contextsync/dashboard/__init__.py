"""Read-only web dashboard for a coordination session.

Exposes tabs, the active selection, stream connections, pending tool
invocations and unread state, plus a websocket relay per context stream.
"""

from contextsync.dashboard.routes import create_app
from contextsync.dashboard.server import (
    get_dashboard_status,
    is_dashboard_running,
    start_dashboard,
    stop_dashboard,
)
from contextsync.dashboard.websocket import ConnectionManager

__all__ = [
    "ConnectionManager",
    "create_app",
    "get_dashboard_status",
    "is_dashboard_running",
    "start_dashboard",
    "stop_dashboard",
]
