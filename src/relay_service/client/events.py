"""Typed events emitted by ``RelayClient``.

The set is closed: ``to_event`` maps every inbound envelope onto exactly one
variant, with ``Unhandled`` as the fallback for types this client does not
know yet.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from relay_service.domain.value_objects.enums import ConnectionState, MessageType
from relay_service.infrastructure.ws.protocol import Envelope


@dataclass(frozen=True, slots=True)
class StateChanged:
    previous: ConnectionState
    current: ConnectionState


@dataclass(frozen=True, slots=True)
class Connected:
    user_id: str | None


@dataclass(frozen=True, slots=True)
class Disconnected:
    code: int | None
    reason: str
    clean: bool


@dataclass(frozen=True, slots=True)
class MaxReconnectAttemptsReached:
    attempts: int


@dataclass(frozen=True, slots=True)
class RoomUpdate:
    """Status change of a room-scoped resource (``rfq_update``)."""

    payload: Any
    room: str | None
    sender_id: str | None
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class ComplianceUpdate:
    payload: Any
    room: str | None
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class CollaborationMessage:
    payload: Any
    room: str | None
    sender_id: str | None
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Presence:
    """Active-user, typing-indicator and online/offline signals."""

    kind: str
    payload: Any
    room: str | None
    sender_id: str | None
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Notification:
    id: str
    title: str | None
    message: str | None
    level: str
    payload: Any
    room: str | None
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class ServerError:
    code: str | None
    message: str | None
    payload: Any


@dataclass(frozen=True, slots=True)
class Acknowledgement:
    """Server confirmations: ``connected``, ``joined_room``, ``left_room``, ``authenticated``."""

    type: str
    payload: Any


@dataclass(frozen=True, slots=True)
class ParseError:
    raw: str
    error: str


@dataclass(frozen=True, slots=True)
class Unhandled:
    envelope: Envelope


ClientEvent = (
    StateChanged
    | Connected
    | Disconnected
    | MaxReconnectAttemptsReached
    | RoomUpdate
    | ComplianceUpdate
    | CollaborationMessage
    | Presence
    | Notification
    | ServerError
    | Acknowledgement
    | ParseError
    | Unhandled
)

_PRESENCE_TYPES = frozenset(
    {MessageType.USER_ACTIVITY, MessageType.PRESENCE_CHANGE, MessageType.TYPING_INDICATOR}
)
_ACK_TYPES = frozenset(
    {MessageType.CONNECTED, MessageType.JOINED_ROOM, MessageType.LEFT_ROOM, MessageType.AUTHENTICATED}
)
_DISCARDED_TYPES = frozenset({MessageType.HEARTBEAT_ACK, MessageType.PONG})


def to_event(envelope: Envelope) -> ClientEvent | None:
    """Map an inbound envelope to its event; ``None`` means discard."""
    msg_type = envelope.type
    payload = envelope.payload

    if msg_type in _DISCARDED_TYPES:
        return None
    if msg_type == MessageType.RFQ_UPDATE:
        return RoomUpdate(payload, envelope.target_room, envelope.sender_id, envelope.timestamp)
    if msg_type == MessageType.COMPLIANCE_UPDATE:
        return ComplianceUpdate(payload, envelope.target_room, envelope.timestamp)
    if msg_type == MessageType.COLLABORATION_MESSAGE:
        return CollaborationMessage(payload, envelope.target_room, envelope.sender_id, envelope.timestamp)
    if msg_type in _PRESENCE_TYPES:
        return Presence(msg_type, payload, envelope.target_room, envelope.sender_id, envelope.timestamp)
    if msg_type == MessageType.NOTIFICATION:
        body = payload if isinstance(payload, dict) else {}
        return Notification(
            id=envelope.message_id or str(int(envelope.timestamp.timestamp() * 1000)),
            title=body.get("title"),
            message=body.get("message"),
            level=body.get("type", "info"),
            payload=payload,
            room=envelope.target_room,
            timestamp=envelope.timestamp,
        )
    if msg_type == MessageType.ERROR:
        body = payload if isinstance(payload, dict) else {}
        return ServerError(body.get("code"), body.get("message"), payload)
    if msg_type in _ACK_TYPES:
        return Acknowledgement(msg_type, payload)
    return Unhandled(envelope)
