"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.requests import HTTPConnection

from relay_service.application.dto.identity import Identity
from relay_service.application.ports.auth import TokenVerifier
from relay_service.config import settings
from relay_service.infrastructure.auth.hs256_verifier import HS256Verifier
from relay_service.infrastructure.auth.jwks_verifier import JWKSVerifier
from relay_service.infrastructure.ws.manager import ConnectionManager

_bearer_scheme = HTTPBearer()


def _get_verifier() -> TokenVerifier:
    if settings.JWT_VERIFY_MODE == "jwks":
        assert settings.JWKS_URL, "JWKS_URL must be set when JWT_VERIFY_MODE=jwks"
        return JWKSVerifier(settings.JWKS_URL)
    return HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)


_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = _get_verifier()
    return _verifier


def get_manager(conn: HTTPConnection) -> ConnectionManager:
    return conn.app.state.connections


Manager = Annotated[ConnectionManager, Depends(get_manager)]


async def get_current_identity(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_verifier)],
) -> Identity:
    try:
        return await verifier.verify(credentials.credentials)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
