from __future__ import annotations

from collections.abc import Sequence

from relay_service.application.dto.identity import Identity
from relay_service.application.exceptions import ForbiddenError, ValidationError


def assert_room_name(room: object) -> str:
    if not isinstance(room, str) or not room.strip():
        raise ValidationError("Room name must be a non-empty string")
    return room


def assert_room_access(
    identity: Identity | None,
    room: str,
    protected_prefixes: Sequence[str],
) -> None:
    """Raise if an unauthenticated connection targets a protected room."""
    if identity is not None:
        if room.startswith("user-") and not identity.is_service:
            if identity.user_id is None or room != f"user-{identity.user_id}":
                raise ForbiddenError("Cannot access another user's room")
        return
    if any(room.startswith(prefix) for prefix in protected_prefixes):
        raise ForbiddenError(f"Room {room!r} requires authentication")


def assert_authenticated(identity: Identity | None) -> Identity:
    if identity is None:
        raise ForbiddenError("Authentication required")
    return identity


def assert_service(identity: Identity | None) -> Identity:
    identity = assert_authenticated(identity)
    if not identity.is_service:
        raise ForbiddenError("Service access required")
    return identity
