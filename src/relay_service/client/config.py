from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field


class ClientConfig(BaseModel):
    """Tuning for one ``RelayClient``; times are in seconds."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: str = "ws://localhost:8000"
    path: str = "/ws"
    connect_timeout: float = Field(default=10.0, gt=0)
    heartbeat_interval: float = Field(default=30.0, gt=0)
    reconnect_base_delay: float = Field(default=1.0, gt=0)
    reconnect_max_delay: float = Field(default=30.0, gt=0)
    max_reconnect_attempts: int = Field(default=5, ge=0)
    max_queue_size: int = Field(default=1000, ge=1)


@dataclass(frozen=True, slots=True)
class ConnectOptions:
    """Connection-establishment parameters sent as URL query parameters."""

    user_id: str
    token: str | None = None
    agent_id: str | None = None
