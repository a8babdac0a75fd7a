"""In-memory room registry: room name -> member connection ids."""
from __future__ import annotations

import logging

from relay_service.domain.value_objects.ids import ConnectionId

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Tracks room membership in both directions.

    Every method is synchronous and runs on the event loop that owns the
    sockets, so each call is atomic with respect to every other call.
    A room exists only while it has members.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, set[ConnectionId]] = {}
        self._subscriptions: dict[ConnectionId, set[str]] = {}

    def join(self, connection_id: ConnectionId, room: str) -> bool:
        """Add membership; returns False if it already existed."""
        members = self._rooms.setdefault(room, set())
        if connection_id in members:
            return False
        members.add(connection_id)
        self._subscriptions.setdefault(connection_id, set()).add(room)
        logger.debug("%s joined %s (members=%d)", connection_id, room, len(members))
        return True

    def leave(self, connection_id: ConnectionId, room: str) -> bool:
        """Remove membership; returns False if there was none."""
        members = self._rooms.get(room)
        if members is None or connection_id not in members:
            return False
        members.discard(connection_id)
        if not members:
            del self._rooms[room]
            logger.debug("Room %s removed (empty)", room)
        rooms = self._subscriptions.get(connection_id)
        if rooms is not None:
            rooms.discard(room)
            if not rooms:
                del self._subscriptions[connection_id]
        return True

    def members_of(self, room: str) -> frozenset[ConnectionId]:
        return frozenset(self._rooms.get(room, ()))

    def rooms_of(self, connection_id: ConnectionId) -> frozenset[str]:
        return frozenset(self._subscriptions.get(connection_id, ()))

    def drop_connection(self, connection_id: ConnectionId) -> frozenset[str]:
        """Leave every room the connection belongs to; returns the rooms left."""
        rooms = self.rooms_of(connection_id)
        for room in rooms:
            self.leave(connection_id, room)
        return rooms

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    def room_names(self) -> list[str]:
        return sorted(self._rooms)

    def __contains__(self, room: object) -> bool:
        return room in self._rooms
