from __future__ import annotations

import pytest

from relay_service.application.dto.identity import Identity
from relay_service.domain.value_objects.enums import IdentityKind
from relay_service.infrastructure.ws.protocol import Envelope
from tests.conftest import FakeTransport


def _join(manager, room, transport, identity=None):
    conn = manager.register(transport, identity)
    manager.registry.join(conn.id, room)
    return conn


@pytest.mark.asyncio
async def test_broadcast_excludes_sender(manager):
    a, b = FakeTransport(), FakeTransport()
    conn_a = _join(manager, "rfq-42", a)
    _join(manager, "rfq-42", b)

    delivered = await manager.engine.broadcast(
        "rfq-42", Envelope(type="rfq_update", payload={"status": "awarded"}), exclude=conn_a.id,
    )

    assert delivered == 1
    assert a.sent == []
    assert b.envelopes[0].payload == {"status": "awarded"}


@pytest.mark.asyncio
async def test_failing_recipient_does_not_abort_fan_out(manager):
    transports = [FakeTransport() for _ in range(5)]
    transports[2].fail_sends = True
    for t in transports:
        _join(manager, "rfq-42", t)

    delivered = await manager.engine.broadcast("rfq-42", Envelope(type="rfq_update"))

    assert delivered == 4
    for i, t in enumerate(transports):
        assert len(t.sent) == (0 if i == 2 else 1)


@pytest.mark.asyncio
async def test_closed_sockets_are_skipped(manager):
    open_t, closed_t = FakeTransport(), FakeTransport(is_open=False)
    _join(manager, "lobby", open_t)
    _join(manager, "lobby", closed_t)

    assert await manager.engine.broadcast("lobby", Envelope(type="user_activity")) == 1
    assert closed_t.sent == []


@pytest.mark.asyncio
async def test_broadcast_to_missing_room_delivers_nothing(manager):
    assert await manager.engine.broadcast("ghost", Envelope(type="rfq_update")) == 0


@pytest.mark.asyncio
async def test_send_to_users_resolves_identities(manager):
    alice = FakeTransport()
    alice_phone = FakeTransport()
    bob = FakeTransport()
    manager.register(alice, Identity(kind=IdentityKind.USER, user_id="alice"))
    manager.register(alice_phone, Identity(kind=IdentityKind.USER, user_id="alice"))
    manager.register(bob, Identity(kind=IdentityKind.USER, user_id="bob"))
    manager.register(FakeTransport())

    delivered = await manager.engine.send_to_users(["alice"], Envelope(type="notification"))

    assert delivered == 2
    assert bob.sent == []
