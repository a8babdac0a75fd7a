from __future__ import annotations

from typing import Protocol

from relay_service.application.dto.identity import Identity


class TokenVerifier(Protocol):
    async def verify(self, token: str) -> Identity: ...
