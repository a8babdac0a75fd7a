"""WebSocket message envelope shared by the relay server and client."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from relay_service.application.ports.clock import utcnow


class ProtocolError(Exception):
    """Raised for wire-level problems that never terminate a connection."""

    code = "protocol_error"


class EnvelopeParseError(ProtocolError):
    code = "parse_error"


class Envelope(BaseModel):
    """The only data crossing the wire, in either direction.

    Wire names are camelCase; ``senderId`` is stamped by the relay and is
    never trusted on ingress.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str
    payload: Any = None
    timestamp: datetime = Field(default_factory=utcnow)
    sender_id: str | None = Field(default=None, alias="senderId")
    target_room: str | None = Field(default=None, alias="targetRoom")
    message_id: str | None = Field(default=None, alias="messageId")


def encode(envelope: Envelope) -> str:
    return envelope.model_dump_json(by_alias=True, exclude_none=True)


def decode(raw: str | bytes) -> Envelope:
    """Parse one frame into an envelope.

    Raises ``EnvelopeParseError`` for anything that is not a JSON object with
    at least a string ``type``.
    """
    try:
        envelope = Envelope.model_validate_json(raw)
    except PydanticValidationError as exc:
        raise EnvelopeParseError(str(exc)) from exc
    if not envelope.type:
        raise EnvelopeParseError("Envelope type must not be empty")
    return envelope


def error_envelope(code: str, message: str, **extra: Any) -> Envelope:
    return Envelope(type="error", payload={"code": code, "message": message, **extra})
