"""Wire format of events published to the Redis ingress channel."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class IngressEvent(BaseModel):
    """``{"event": <message type>, "data": {...}}`` as published by producers."""

    model_config = ConfigDict(extra="ignore")

    event: str = Field(min_length=1)
    data: dict[str, Any]


def serialize_event(event_type: str, data: dict[str, Any]) -> str:
    return IngressEvent(event=event_type, data=data).model_dump_json()


def deserialize_event(raw: str | bytes) -> tuple[str, dict[str, Any]]:
    """Raises ``ValueError`` (pydantic's ``ValidationError``) on malformed input."""
    event = IngressEvent.model_validate_json(raw)
    return event.event, event.data
