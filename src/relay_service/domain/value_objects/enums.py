from __future__ import annotations

from enum import StrEnum


class MessageType(StrEnum):
    AUTHENTICATE = "authenticate"
    AUTHENTICATED = "authenticated"
    CONNECTED = "connected"
    JOIN_ROOM = "join_room"
    LEAVE_ROOM = "leave_room"
    JOINED_ROOM = "joined_room"
    LEFT_ROOM = "left_room"
    BROADCAST = "broadcast"
    HEARTBEAT = "heartbeat"
    HEARTBEAT_ACK = "heartbeat_ack"
    PING = "ping"
    PONG = "pong"
    NOTIFICATION = "notification"
    ERROR = "error"
    RFQ_UPDATE = "rfq_update"
    COMPLIANCE_UPDATE = "compliance_update"
    COLLABORATION_MESSAGE = "collaboration_message"
    USER_ACTIVITY = "user_activity"
    TYPING_INDICATOR = "typing_indicator"
    PRESENCE_CHANGE = "presence_change"


class IdentityKind(StrEnum):
    USER = "user"
    AGENT = "agent"
    SERVICE = "service"


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
