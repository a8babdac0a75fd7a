from __future__ import annotations

import asyncio
import logging

import jwt
from jwt import PyJWKClient

from relay_service.application.dto.identity import Identity
from relay_service.infrastructure.auth.claims import identity_from_claims

logger = logging.getLogger(__name__)


class JWKSVerifier:
    """Verify JWTs using a remote JWKS endpoint."""

    def __init__(self, jwks_url: str) -> None:
        self._jwks_url = jwks_url
        self._jwk_client = PyJWKClient(jwks_url)

    async def verify(self, token: str) -> Identity:
        # PyJWKClient fetches over blocking urllib
        signing_key = await asyncio.to_thread(self._jwk_client.get_signing_key_from_jwt, token)
        payload = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256", "ES256"],
        )
        return identity_from_claims(payload)
