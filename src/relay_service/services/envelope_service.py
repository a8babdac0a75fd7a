"""Dispatch of inbound client envelopes by message type."""
from __future__ import annotations

import dataclasses
import logging
from collections.abc import Sequence
from typing import Any

from relay_service.application.dto.identity import Identity
from relay_service.application.exceptions import AuthenticationError, ValidationError
from relay_service.application.policies.permissions import (
    assert_authenticated,
    assert_room_access,
    assert_room_name,
)
from relay_service.application.ports.auth import TokenVerifier
from relay_service.domain.entities.connection import Connection
from relay_service.domain.value_objects.enums import IdentityKind, MessageType
from relay_service.infrastructure.ws.manager import ConnectionManager, presence_envelope
from relay_service.infrastructure.ws.protocol import Envelope, encode

logger = logging.getLogger(__name__)


async def handle_envelope(
    connection: Connection,
    envelope: Envelope,
    manager: ConnectionManager,
    *,
    verifier: TokenVerifier | None = None,
    protected_prefixes: Sequence[str] = (),
) -> None:
    """Route one decoded envelope from ``connection``.

    Raises ``AppError`` subclasses for requests the relay rejects; the caller
    reports those back to the originating client only.
    """
    envelope = envelope.model_copy(update={"sender_id": connection.sender_id})
    msg_type = envelope.type

    if msg_type == MessageType.PONG:
        connection.is_alive = True

    elif msg_type == MessageType.HEARTBEAT:
        connection.is_alive = True
        await reply(connection, Envelope(type=MessageType.HEARTBEAT_ACK, message_id=envelope.message_id))

    elif msg_type == MessageType.PING:
        await reply(connection, Envelope(type=MessageType.PONG, message_id=envelope.message_id))

    elif msg_type == MessageType.AUTHENTICATE:
        await authenticate(connection, _payload_dict(envelope), manager, verifier)

    elif msg_type == MessageType.JOIN_ROOM:
        room = assert_room_name(envelope.target_room or _room_from_payload(envelope))
        assert_room_access(connection.identity, room, protected_prefixes)
        manager.registry.join(connection.id, room)
        await reply(connection, Envelope(type=MessageType.JOINED_ROOM, payload={"room": room}))

    elif msg_type == MessageType.LEAVE_ROOM:
        room = assert_room_name(envelope.target_room or _room_from_payload(envelope))
        manager.registry.leave(connection.id, room)
        await reply(connection, Envelope(type=MessageType.LEFT_ROOM, payload={"room": room}))

    elif msg_type == MessageType.NOTIFICATION and envelope.target_room is None:
        await notify(connection, envelope, manager)

    elif envelope.target_room is not None:
        room = assert_room_name(envelope.target_room)
        assert_room_access(connection.identity, room, protected_prefixes)
        await manager.engine.broadcast(room, envelope, exclude=connection.id)

    elif msg_type == MessageType.BROADCAST:
        raise ValidationError("broadcast requires targetRoom")

    else:
        raise ValidationError(f"Unknown message type: {msg_type}")


async def authenticate(
    connection: Connection,
    data: dict[str, Any],
    manager: ConnectionManager,
    verifier: TokenVerifier | None,
) -> None:
    """Attach identity from a late token and/or claim an agent id.

    An agent id is only accepted on a connection that already carries a
    verified identity. Kind and role never come from the payload; the role
    stays whatever the verified token granted.
    """
    token = data.get("token")
    if token:
        if verifier is None:
            raise ValidationError("Token authentication is not available")
        try:
            connection.identity = await verifier.verify(str(token))
        except Exception as exc:
            raise AuthenticationError("Invalid token") from exc

    agent_id = data.get("agentId")
    if not token and not agent_id:
        raise ValidationError("authenticate requires token or agentId")

    if agent_id:
        identity = assert_authenticated(connection.identity)
        connection.identity = dataclasses.replace(
            identity,
            kind=IdentityKind.AGENT,
            agent_id=str(agent_id),
        )
        await announce_agent(connection, manager)

    await reply(
        connection,
        Envelope(
            type=MessageType.AUTHENTICATED,
            payload={"userId": connection.user_id, "agentId": connection.agent_id},
        ),
    )


async def announce_agent(connection: Connection, manager: ConnectionManager) -> None:
    """Join the agent rooms and tell the presence room this agent is online."""
    agent_id = connection.agent_id
    if agent_id is None:
        return
    manager.registry.join(connection.id, manager.presence_room)
    manager.registry.join(connection.id, f"agent-{agent_id}")
    await manager.engine.broadcast(
        manager.presence_room,
        presence_envelope(agent_id, online=True),
        exclude=connection.id,
    )


async def notify(connection: Connection, envelope: Envelope, manager: ConnectionManager) -> int:
    """Deliver a notification to the named users' connections."""
    assert_authenticated(connection.identity)
    data = _payload_dict(envelope)
    user_ids = data.get("targetUserIds") or []
    if data.get("targetUserId"):
        user_ids = [*user_ids, data["targetUserId"]]
    if not user_ids:
        raise ValidationError("notification requires targetUserId or targetUserIds")
    delivered = await manager.engine.send_to_users([str(u) for u in user_ids], envelope)
    logger.debug("Notification from %s delivered to %d sockets", connection.id, delivered)
    return delivered


async def relay_upstream_event(
    manager: ConnectionManager,
    event_type: str,
    data: dict[str, Any],
) -> int:
    """Forward an event published by an upstream producer process.

    ``data`` carries either ``room`` or ``targetUserIds`` plus an optional
    ``payload``; without ``payload`` the remaining keys are the payload.
    """
    body = dict(data)
    room = body.pop("room", None) or body.pop("targetRoom", None)
    user_ids = body.pop("targetUserIds", None)
    payload = body.pop("payload", body)
    envelope = Envelope(type=event_type, payload=payload, target_room=room, sender_id="relay")
    if room:
        return await manager.engine.broadcast(room, envelope)
    if user_ids:
        return await manager.engine.send_to_users([str(u) for u in user_ids], envelope)
    logger.warning("Upstream event %s has no room or recipients, dropped", event_type)
    return 0


async def reply(connection: Connection, envelope: Envelope) -> None:
    await connection.socket.send_text(encode(envelope))


def identity_for_agent(identity: Identity | None, agent_id: str | None) -> Identity | None:
    """Combine a verified identity with the ``agentId`` connect parameter."""
    if identity is None or not agent_id:
        return identity
    return dataclasses.replace(identity, kind=IdentityKind.AGENT, agent_id=agent_id)


def _payload_dict(envelope: Envelope) -> dict[str, Any]:
    if envelope.payload is None:
        return {}
    if not isinstance(envelope.payload, dict):
        raise ValidationError(f"{envelope.type} payload must be an object")
    return envelope.payload


def _room_from_payload(envelope: Envelope) -> Any:
    data = _payload_dict(envelope)
    return data.get("room") or data.get("channel")
