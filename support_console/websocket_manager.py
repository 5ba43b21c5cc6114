# support_console/websocket_manager.py
from fastapi import WebSocket
from typing import Any, Dict
import json
import logging
import uuid

logger = logging.getLogger(__name__)

class ConnectionManager:
    """Manage console WebSocket connections for realtime updates"""

    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket) -> str:
        """Accept and store a new WebSocket connection"""
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        self.active_connections[connection_id] = websocket
        logger.info(f"Console {connection_id} connected. Total connections: {len(self.active_connections)}")
        return connection_id

    def disconnect(self, connection_id: str):
        """Remove WebSocket connection"""
        if connection_id in self.active_connections:
            del self.active_connections[connection_id]
            logger.info(f"Console {connection_id} disconnected. Total connections: {len(self.active_connections)}")

    async def send_json(self, payload: Dict[str, Any], connection_id: str):
        """Send a payload to one console"""
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            return
        try:
            await websocket.send_text(json.dumps(payload, default=str))
        except Exception as e:
            logger.error(f"Error sending to console {connection_id}: {e}")
            self.disconnect(connection_id)

    async def broadcast(self, payload: Dict[str, Any]):
        """Broadcast a payload to every connected console"""
        message = json.dumps(payload, default=str)
        disconnected = []
        for connection_id, connection in list(self.active_connections.items()):
            try:
                await connection.send_text(message)
            except Exception as e:
                logger.error(f"Error broadcasting to {connection_id}: {e}")
                disconnected.append(connection_id)

        # Clean up disconnected consoles
        for connection_id in disconnected:
            self.disconnect(connection_id)
