"""FastAPI routes exposing read-only coordination state."""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import FastAPI, HTTPException, Request, WebSocket

from contextsync.dashboard.websocket import ConnectionManager
from contextsync.session import CoordinationSession

log = logging.getLogger(__name__)


def create_app(session: CoordinationSession) -> FastAPI:
    """Create the dashboard application for ``session``."""
    app = FastAPI(
        title="contextsync dashboard",
        description="Tabs, streams and tool invocations of a coordination session",
        version="0.1.0",
    )
    app.state.session = session
    app.state.connection_manager = ConnectionManager()
    app.state.started_at = time.time()

    _register_routes(app)
    return app


def _session(request: Request) -> CoordinationSession:
    session: CoordinationSession | None = getattr(request.app.state, "session", None)
    if session is None or session.closed:
        raise HTTPException(status_code=503, detail="Coordination session not available")
    return session


def _register_routes(app: FastAPI) -> None:
    """Register all API routes."""

    @app.get("/api/status")
    async def api_status(request: Request) -> dict[str, Any]:
        manager: ConnectionManager = request.app.state.connection_manager
        session: CoordinationSession = request.app.state.session
        return {
            "status": "closed" if session.closed else "ok",
            "uptime": time.time() - request.app.state.started_at,
            "connections": manager.get_connection_count(),
        }

    @app.get("/api/tabs")
    async def api_tabs(request: Request) -> list[dict[str, Any]]:
        return _session(request).registry.to_list()

    @app.get("/api/selection")
    async def api_selection(request: Request) -> dict[str, Any]:
        session = _session(request)
        selected = session.selected_context
        return {
            "active_tab_id": session.active_tab_id,
            "selected_context": selected.to_dict() if selected else None,
        }

    @app.get("/api/streams")
    async def api_streams(request: Request) -> list[dict[str, Any]]:
        return _session(request).streams.connections()

    @app.get("/api/invocations")
    async def api_invocations(request: Request) -> list[dict[str, Any]]:
        return [inv.to_dict() for inv in _session(request).tools.pending()]

    @app.get("/api/notifications/{context_id}")
    async def api_notifications(request: Request, context_id: str) -> dict[str, Any]:
        state = _session(request).notifications.state_for(context_id)
        return {"context_id": context_id, **state.to_dict()}

    @app.websocket("/ws/streams/{context_id}")
    async def websocket_stream(websocket: WebSocket, context_id: str) -> None:
        """Relay a context's stream events to one client."""
        session: CoordinationSession = websocket.app.state.session
        manager: ConnectionManager = websocket.app.state.connection_manager
        await manager.relay(websocket, context_id, session.streams)
