from __future__ import annotations

from functools import partial
from typing import Any

import pytest

from relay_service.infrastructure.bus.redis_pubsub import RedisPubSubPublisher, RedisPubSubSubscriber
from relay_service.infrastructure.bus.serializer import deserialize_event
from relay_service.services.envelope_service import relay_upstream_event
from tests.conftest import FakeTransport


class FakeRedis:
    def __init__(self) -> None:
        self.published: list[tuple[str, str]] = []

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 1


@pytest.mark.asyncio
async def test_published_event_reaches_room_members(manager, user_identity):
    redis = FakeRedis()
    member = FakeTransport()
    conn = manager.register(member, user_identity)
    manager.registry.join(conn.id, "rfq-42")

    await RedisPubSubPublisher(redis).publish(
        "relay.ingress", "rfq_update", {"room": "rfq-42", "payload": {"status": "awarded"}},
    )
    channel, raw = redis.published[0]
    subscriber = RedisPubSubSubscriber(redis, channel, partial(relay_upstream_event, manager))
    await subscriber.dispatch(raw)

    [envelope] = member.envelopes
    assert channel == "relay.ingress"
    assert envelope.type == "rfq_update"
    assert envelope.target_room == "rfq-42"
    assert envelope.payload == {"status": "awarded"}
    assert envelope.sender_id == "relay"


@pytest.mark.asyncio
async def test_malformed_ingress_is_logged_not_raised(caplog):
    calls: list[Any] = []

    async def callback(event_type: str, data: dict[str, Any]) -> None:
        calls.append((event_type, data))

    subscriber = RedisPubSubSubscriber(FakeRedis(), "relay.ingress", callback)
    await subscriber.dispatch("{broken")
    await subscriber.dispatch('{"event": "rfq_update", "data": [1, 2]}')

    assert calls == []
    assert "Error processing pubsub message" in caplog.text


def test_deserialize_requires_object_data():
    assert deserialize_event('{"event": "notification", "data": {"targetUserIds": ["1"]}}') == (
        "notification",
        {"targetUserIds": ["1"]},
    )
    with pytest.raises(ValueError):
        deserialize_event('{"event": "notification"}')
