"""
WebSocket Manager - pushes job and queue changes to the UI
"""
from fastapi import WebSocket
from typing import Set
from datetime import datetime
from loguru import logger


class WebSocketManager:
    """
    Manages WebSocket connections and message broadcasting.
    """

    def __init__(self):
        self.active_connections: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket):
        """Accept a new WebSocket connection"""
        await websocket.accept()
        self.active_connections.add(websocket)
        logger.info(f"WebSocket connected. Total: {len(self.active_connections)}")

    def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket connection"""
        self.active_connections.discard(websocket)
        logger.info(f"WebSocket disconnected. Total: {len(self.active_connections)}")

    async def broadcast(self, message: dict):
        """Send a message to every connection, dropping the ones that fail"""
        if "timestamp" not in message:
            message["timestamp"] = datetime.utcnow().isoformat()

        disconnected = set()
        for connection in list(self.active_connections):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.warning(f"Failed to send to WebSocket: {e}")
                disconnected.add(connection)

        for conn in disconnected:
            self.disconnect(conn)

    async def broadcast_job_update(self, job_id: str, status: str, info: str = None):
        """Convenience method for job status changes"""
        await self.broadcast({
            "type": "job_update",
            "payload": {
                "jobId": job_id,
                "status": status,
                "info": info,
            }
        })

    async def broadcast_queue_update(self, job_id: str, action: str):
        """Convenience method for queue changes (enqueued, dequeued, dropped)"""
        await self.broadcast({
            "type": "queue_update",
            "payload": {
                "jobId": job_id,
                "action": action,
            }
        })

    @property
    def connection_count(self) -> int:
        return len(self.active_connections)


# Global manager instance
manager = WebSocketManager()
