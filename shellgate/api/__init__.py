"""
API module for WebSocket and HTTP endpoints.
"""
from .websocket import websocket_endpoint
from .terminal import router as terminal_router

__all__ = ['websocket_endpoint', 'terminal_router']
