"""
WebSocket connection management.

Keeps the set of UI clients watching terminal activity and fans terminal
events out to them.
"""
import json
import logging
from typing import List

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Broadcasts terminal events to every connected client.

    A client whose send fails is dropped; the remaining clients still get
    the message.
    """

    def __init__(self):
        self.active_connections: List[WebSocket] = []

    @property
    def connection_count(self) -> int:
        return len(self.active_connections)

    async def connect(self, websocket: WebSocket):
        """Accept and track a new WebSocket connection."""
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    async def broadcast(self, message: str):
        failed = []
        for connection in list(self.active_connections):
            try:
                await connection.send_text(message)
            except Exception as e:
                logger.debug("[WS] Dropping client after failed send: %s", e)
                failed.append(connection)

        for connection in failed:
            self.disconnect(connection)

    async def broadcast_json(self, message_type: str, content: str):
        """Broadcast a JSON message with type and content fields."""
        await self.broadcast(json.dumps({"type": message_type, "content": content}))

    async def broadcast_event(self, message_type: str, payload: dict):
        """
        Broadcast a terminal event.

        The payload is JSON-encoded into the content field, so clients
        decode terminal events the same way as every other message.
        """
        await self.broadcast_json(message_type, json.dumps(payload))
