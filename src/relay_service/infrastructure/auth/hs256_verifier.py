from __future__ import annotations

import jwt

from relay_service.application.dto.identity import Identity
from relay_service.infrastructure.auth.claims import identity_from_claims


class HS256Verifier:
    """Verify JWTs signed with a shared HS256 secret."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    async def verify(self, token: str) -> Identity:
        payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        return identity_from_claims(payload)
