"""
FastAPI application factory.

Creates and configures the FastAPI application instance. The app owns
one TerminalService (and its host) for its whole lifetime.
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.terminal import router as terminal_router
from .api.websocket import websocket_endpoint
from .core.connection import ConnectionManager
from .services.host import TerminalHost
from .services.local_host import LocalShellHost
from .services.terminal import TerminalService


def create_app(host: Optional[TerminalHost] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        host: Terminal host to run commands in (defaults to a LocalShellHost)

    Returns:
        Configured FastAPI instance
    """
    manager = ConnectionManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service = TerminalService(host or LocalShellHost(), broadcaster=manager)
        app.state.terminal_service = service
        try:
            yield
        finally:
            service.dispose_all()

    app = FastAPI(
        title="ShellGate API",
        description="Reusable terminal sessions and command auto-approval",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.connection_manager = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register WebSocket endpoint
    app.add_websocket_route("/ws", websocket_endpoint)

    # Register terminal API routes (e.g., /api/terminal/validate)
    app.include_router(terminal_router)

    return app
