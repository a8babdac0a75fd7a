from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from relay_service.application.dto.identity import Identity
from relay_service.application.ports.clock import utcnow
from relay_service.application.ports.transport import Transport
from relay_service.domain.value_objects.ids import ConnectionId


@dataclass(eq=False, slots=True)
class Connection:
    """One accepted socket and the relay state attached to it.

    Room subscriptions live in the ``RoomRegistry``, keyed by ``id``.
    """

    id: ConnectionId
    socket: Transport
    identity: Identity | None = None
    is_alive: bool = True
    connected_at: datetime = field(default_factory=utcnow)

    @property
    def user_id(self) -> str | None:
        return self.identity.user_id if self.identity else None

    @property
    def agent_id(self) -> str | None:
        return self.identity.agent_id if self.identity else None

    @property
    def sender_id(self) -> str:
        """Identity stamped on envelopes this connection originates."""
        if self.identity is not None:
            return self.identity.user_id or self.identity.agent_id or self.id
        return self.id
