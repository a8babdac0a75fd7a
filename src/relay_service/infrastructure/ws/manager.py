"""In-process WebSocket connection manager."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from relay_service.application.dto.identity import Identity
from relay_service.application.ports.clock import utcnow
from relay_service.application.ports.transport import Transport
from relay_service.domain.entities.connection import Connection
from relay_service.domain.value_objects.enums import MessageType
from relay_service.domain.value_objects.ids import ConnectionId, new_connection_id
from relay_service.infrastructure.ws.broadcast import BroadcastEngine
from relay_service.infrastructure.ws.protocol import Envelope
from relay_service.infrastructure.ws.registry import RoomRegistry

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Owns the connection table, the room registry and the broadcast engine."""

    def __init__(self, presence_room: str = "agents") -> None:
        self.presence_room = presence_room
        self._connections: dict[ConnectionId, Connection] = {}
        self._readers: dict[ConnectionId, asyncio.Task[Any]] = {}
        self.registry = RoomRegistry()
        self.engine = BroadcastEngine(self.registry, self._connections)

    def register(self, socket: Transport, identity: Identity | None = None) -> Connection:
        connection = Connection(id=new_connection_id(), socket=socket, identity=identity)
        self._connections[connection.id] = connection
        logger.info(
            "WS connected: %s user=%s agent=%s (total=%d)",
            connection.id, connection.user_id, connection.agent_id, len(self._connections),
        )
        return connection

    def attach_reader(self, connection_id: ConnectionId, task: asyncio.Task[Any]) -> None:
        self._readers[connection_id] = task

    def get(self, connection_id: ConnectionId) -> Connection | None:
        return self._connections.get(connection_id)

    def connections(self) -> list[Connection]:
        return list(self._connections.values())

    def subscriptions_of(self, connection_id: ConnectionId) -> frozenset[str]:
        return self.registry.rooms_of(connection_id)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def disconnect(self, connection_id: ConnectionId) -> None:
        """Cleanup path shared by clean closes and forced terminations."""
        connection = self._connections.pop(connection_id, None)
        self._readers.pop(connection_id, None)
        if connection is None:
            return
        rooms = self.registry.drop_connection(connection_id)
        logger.info(
            "WS disconnected: %s (left %d rooms, total=%d)",
            connection_id, len(rooms), len(self._connections),
        )
        if connection.agent_id:
            await self.engine.broadcast(
                self.presence_room,
                presence_envelope(connection.agent_id, online=False),
            )

    async def terminate(self, connection_id: ConnectionId, reason: str = "Liveness timeout") -> None:
        """Forcibly close a socket and run the disconnect cleanup."""
        connection = self._connections.get(connection_id)
        if connection is None:
            return
        try:
            await connection.socket.close(code=1001, reason=reason)
        except Exception:
            logger.debug("Close of %s failed", connection_id, exc_info=True)
        reader = self._readers.get(connection_id)
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
        await self.disconnect(connection_id)

    def snapshot(self) -> dict[str, Any]:
        return {
            "clients": len(self._connections),
            "rooms": self.registry.room_count,
            "timestamp": utcnow().isoformat(),
        }


def presence_envelope(agent_id: str, *, online: bool) -> Envelope:
    return Envelope(
        type=MessageType.PRESENCE_CHANGE,
        payload={"agentId": agent_id, "isOnline": online, "timestamp": utcnow().isoformat()},
        sender_id=agent_id,
    )
