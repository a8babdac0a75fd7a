from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class RoomOut(BaseModel):
    name: str
    members: int


class BroadcastIn(BaseModel):
    type: str = Field(min_length=1)
    payload: Any = None


class NotificationIn(BaseModel):
    user_ids: list[str] = Field(min_length=1)
    payload: Any = None


class DeliveryOut(BaseModel):
    delivered: int
