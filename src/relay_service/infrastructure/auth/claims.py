from __future__ import annotations

from typing import Any

from relay_service.application.dto.identity import Identity
from relay_service.application.exceptions import AuthenticationError
from relay_service.domain.value_objects.enums import IdentityKind


def identity_from_claims(payload: dict[str, Any]) -> Identity:
    """Map decoded JWT claims onto an ``Identity``."""
    user_id = payload.get("sub") or payload.get("userId")
    if user_id is None:
        raise AuthenticationError("Token has no subject")
    kind_raw = payload.get("kind", "user")
    kind = IdentityKind(kind_raw) if kind_raw in IdentityKind.__members__.values() else IdentityKind.USER
    agent_id = payload.get("agentId")
    if agent_id is not None and kind == IdentityKind.USER:
        kind = IdentityKind.AGENT
    return Identity(
        kind=kind,
        user_id=str(user_id),
        agent_id=str(agent_id) if agent_id is not None else None,
        role=payload.get("role"),
    )
