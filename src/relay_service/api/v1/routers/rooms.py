"""REST surface for operators and upstream producers in this process."""
from __future__ import annotations

from fastapi import APIRouter

from relay_service.api.deps import CurrentIdentity, Manager
from relay_service.api.v1.schemas.rooms import BroadcastIn, DeliveryOut, NotificationIn, RoomOut
from relay_service.application.policies.permissions import assert_room_name, assert_service
from relay_service.infrastructure.ws.protocol import Envelope

router = APIRouter(prefix="/api/v1/relay", tags=["relay"])


@router.get("/rooms", response_model=list[RoomOut])
async def list_rooms(identity: CurrentIdentity, manager: Manager) -> list[RoomOut]:
    assert_service(identity)
    registry = manager.registry
    return [
        RoomOut(name=name, members=len(registry.members_of(name)))
        for name in registry.room_names()
    ]


@router.post("/rooms/{room}/broadcast", response_model=DeliveryOut)
async def broadcast_to_room(
    room: str,
    body: BroadcastIn,
    identity: CurrentIdentity,
    manager: Manager,
) -> DeliveryOut:
    assert_service(identity)
    assert_room_name(room)
    envelope = Envelope(type=body.type, payload=body.payload, target_room=room, sender_id=identity.user_id)
    delivered = await manager.engine.broadcast(room, envelope)
    return DeliveryOut(delivered=delivered)


@router.post("/notifications", response_model=DeliveryOut)
async def send_notification(
    body: NotificationIn,
    identity: CurrentIdentity,
    manager: Manager,
) -> DeliveryOut:
    assert_service(identity)
    envelope = Envelope(type="notification", payload=body.payload, sender_id=identity.user_id)
    delivered = await manager.engine.send_to_users(body.user_ids, envelope)
    return DeliveryOut(delivered=delivered)
