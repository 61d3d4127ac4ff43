"""WebSocket connection manager.

Tracks every open inbox connection per user and fans per-user events out to
all of that user's tabs and devices.
"""

import json
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass, field

import structlog
from fastapi import WebSocket

logger = structlog.get_logger()


@dataclass
class ClientConnection:
    """Represents a single WebSocket client."""

    websocket: WebSocket
    user_id: uuid.UUID
    connected_at: float = field(default_factory=time.time)
    messages_sent: int = 0


class ConnectionManager:
    """Manages all active WebSocket connections.

    Safe for asyncio via the single-threaded event loop.
    """

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}  # conn_id -> client
        self._user_connections: dict[uuid.UUID, set[str]] = defaultdict(set)  # user_id -> {conn_ids}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def is_connected(self, user_id: uuid.UUID) -> bool:
        return bool(self._user_connections.get(user_id))

    async def connect(self, websocket: WebSocket, conn_id: str, user_id: uuid.UUID) -> None:
        """Accept a new WebSocket connection."""
        await websocket.accept()
        self._connections[conn_id] = ClientConnection(websocket=websocket, user_id=user_id)
        self._user_connections[user_id].add(conn_id)
        logger.info("ws_connected", conn_id=conn_id, user_id=str(user_id))

    async def disconnect(self, conn_id: str) -> None:
        """Forget a connection."""
        client = self._connections.pop(conn_id, None)
        if client is None:
            return

        self._user_connections[client.user_id].discard(conn_id)
        if not self._user_connections[client.user_id]:
            del self._user_connections[client.user_id]

        logger.info("ws_disconnected", conn_id=conn_id, user_id=str(client.user_id))

    async def send_to_user_direct(self, user_id: uuid.UUID, message: dict) -> int:
        """Send a message to every connection of a user.

        Returns the number of connections that received it. Connections that
        fail to receive are dropped.
        """
        conn_ids = list(self._user_connections.get(user_id, set()))
        if not conn_ids:
            return 0

        payload = json.dumps(message, default=str)
        sent = 0
        failed: list[str] = []

        for conn_id in conn_ids:
            client = self._connections.get(conn_id)
            if client is None:
                failed.append(conn_id)
                continue
            try:
                await client.websocket.send_text(payload)
                client.messages_sent += 1
                sent += 1
            except Exception:
                failed.append(conn_id)

        for conn_id in failed:
            await self.disconnect(conn_id)

        return sent

    def get_stats(self) -> dict:
        """Get connection statistics."""
        return {
            "total_connections": len(self._connections),
            "unique_users": len(self._user_connections),
        }


# Global singleton
manager = ConnectionManager()
