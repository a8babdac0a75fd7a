from __future__ import annotations

from dataclasses import dataclass

from relay_service.domain.value_objects.enums import IdentityKind


@dataclass(frozen=True, slots=True)
class Identity:
    """Caller identity extracted from the bearer credential or an authenticate message."""

    kind: IdentityKind
    user_id: str | None = None
    agent_id: str | None = None
    role: str | None = None

    @property
    def is_agent(self) -> bool:
        return self.agent_id is not None

    @property
    def is_service(self) -> bool:
        return self.kind == IdentityKind.SERVICE or self.role == "service"
