from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "info"

    JWT_SECRET: str = ""
    JWT_VERIFY_MODE: Literal["hs256", "jwks"] = "hs256"
    JWT_ALGORITHM: str = "HS256"
    JWKS_URL: str | None = None

    CORS_ORIGINS: list[str] = ["*"]

    WS_PATH: str = "/ws"
    WS_HEARTBEAT_SECONDS: int = 30
    WS_ALLOW_ANONYMOUS: bool = True
    WS_PRESENCE_ROOM: str = "agents"
    WS_PROTECTED_ROOM_PREFIXES: list[str] = ["agents", "agent-", "user-"]

    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_INGRESS_ENABLED: bool = False
    REDIS_PUBSUB_CHANNEL: str = "relay.ingress"

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
