"""
WebSocket endpoint for real-time terminal events.

Server -> Client broadcast messages (JSON):
  - ready: Server is ready
  - terminal_output: One output line ({"id", "text"})
  - terminal_command_complete: Command finished ({"id", "exit_code"})
  - terminal_error: Command dispatch failed ({"id", "error"})
"""
import json
from fastapi import WebSocket, WebSocketDisconnect


async def websocket_endpoint(websocket: WebSocket):
    """Keep a client connected to the terminal event broadcast."""
    manager = websocket.app.state.connection_manager
    await manager.connect(websocket)

    await websocket.send_text(json.dumps({
        "type": "ready",
        "content": "Server ready. Terminal events will be streamed here."
    }))

    try:
        while True:
            # Clients only listen; incoming text keeps the connection alive
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(websocket)
