"""Real-time event feed for connected WebSocket clients.

Purely advisory: events are published after a mutation has committed, and a
client that cannot be reached is dropped without affecting anyone else.
"""
import asyncio
import logging
from typing import Any

from starlette.websockets import WebSocket

from .models import utcnow

logger = logging.getLogger(__name__)


class Broadcaster:
    def __init__(self):
        self._clients: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._clients.add(websocket)
        logger.info(f"Client connected ({self.client_count} total)")

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._clients.discard(websocket)
        logger.info(f"Client disconnected ({self.client_count} total)")

    async def publish(self, event: str, data: dict[str, Any]) -> int:
        """Send ``{event, data, time}`` to every client; returns deliveries."""
        message = {"event": event, "data": data, "time": utcnow().isoformat()}
        async with self._lock:
            clients = list(self._clients)

        delivered = 0
        for websocket in clients:
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping unreachable client: {e}")
                await self.disconnect(websocket)
        return delivered
