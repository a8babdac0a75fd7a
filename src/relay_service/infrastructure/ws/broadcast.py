"""Fan-out of envelopes to room members or to explicit recipients."""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from relay_service.domain.entities.connection import Connection
from relay_service.domain.value_objects.ids import ConnectionId
from relay_service.infrastructure.ws.protocol import Envelope, encode
from relay_service.infrastructure.ws.registry import RoomRegistry

logger = logging.getLogger(__name__)


class BroadcastEngine:
    """Writes one serialized envelope to many sockets.

    A failed write to one recipient is logged and skipped; it never stops
    delivery to the others and never raises out of the call.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        connections: Mapping[ConnectionId, Connection],
    ) -> None:
        self._registry = registry
        self._connections = connections

    async def broadcast(
        self,
        room: str,
        envelope: Envelope,
        exclude: ConnectionId | None = None,
    ) -> int:
        """Send to every member of ``room`` except ``exclude``.

        Returns the number of sockets written to.
        """
        members = self._registry.members_of(room)
        if not members:
            return 0
        delivered = await self._deliver(members, encode(envelope), exclude)
        logger.debug(
            "Broadcast %s to %s: %d/%d delivered",
            envelope.type, room, delivered, len(members),
        )
        return delivered

    async def send_to(
        self,
        connection_ids: Iterable[ConnectionId],
        envelope: Envelope,
    ) -> int:
        """Direct unicast/multicast to named connections."""
        return await self._deliver(list(connection_ids), encode(envelope), None)

    async def send_to_users(self, user_ids: Iterable[str], envelope: Envelope) -> int:
        wanted = set(user_ids)
        targets = [
            conn.id
            for conn in list(self._connections.values())
            if conn.user_id is not None and conn.user_id in wanted
        ]
        return await self.send_to(targets, envelope)

    async def _deliver(
        self,
        connection_ids: Iterable[ConnectionId],
        raw: str,
        exclude: ConnectionId | None,
    ) -> int:
        delivered = 0
        for connection_id in connection_ids:
            if connection_id == exclude:
                continue
            conn = self._connections.get(connection_id)
            if conn is None or not conn.socket.is_open:
                continue
            try:
                await conn.socket.send_text(raw)
            except Exception:
                logger.warning("Send to %s failed", connection_id, exc_info=True)
                continue
            delivered += 1
        return delivered
