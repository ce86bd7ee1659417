"""Dashboard web server lifecycle management."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fastapi import FastAPI

    from contextsync.session import CoordinationSession

log = logging.getLogger(__name__)

_server_task: asyncio.Task[None] | None = None
_server_port: int | None = None
_app: FastAPI | None = None


def is_dashboard_running() -> bool:
    return _server_task is not None and not _server_task.done()


def get_dashboard_status() -> dict[str, Any]:
    connections = 0
    if _app is not None:
        connections = _app.state.connection_manager.get_connection_count()
    return {
        "running": is_dashboard_running(),
        "port": _server_port,
        "connections": connections,
    }


async def start_dashboard(
    session: CoordinationSession,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Serve the dashboard for ``session`` in a background task.

    Host and port default to the session's ``dashboard`` config.
    """
    global _server_task, _server_port, _app

    if is_dashboard_running():
        raise RuntimeError(f"Dashboard already running on port {_server_port}")

    import uvicorn

    from contextsync.dashboard.routes import create_app

    host = host or session.config.dashboard.host
    port = port or session.config.dashboard.port

    _app = create_app(session)
    config = uvicorn.Config(
        _app,
        host=host,
        port=port,
        log_level="warning",
        access_log=False,
    )
    server = uvicorn.Server(config)

    _server_task = asyncio.create_task(server.serve())
    _server_port = port

    log.info(f"Dashboard started on http://{host}:{port}")


async def stop_dashboard() -> None:
    """Close client websockets and stop the server."""
    global _server_task, _server_port, _app

    if not _server_task:
        return

    if _app is not None:
        await _app.state.connection_manager.close_all("Server shutting down")

    _server_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await _server_task

    log.info(f"Dashboard stopped (was on port {_server_port})")

    _server_task = None
    _server_port = None
    _app = None
