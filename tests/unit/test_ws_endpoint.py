from __future__ import annotations

import asyncio
from typing import Any

import pytest
from starlette.websockets import WebSocketState

from relay_service.api.v1.routers.ws import _frame_data, ws_relay
from relay_service.infrastructure.ws.protocol import EnvelopeParseError, decode
from tests.conftest import wait_until


class FakeWebSocket:
    """Just enough of Starlette's ``WebSocket`` for the endpoint coroutine."""

    def __init__(self) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTING
        self.sent: list[str] = []
        self.close_code: int | None = None
        self._inbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    async def accept(self) -> None:
        self.application_state = WebSocketState.CONNECTED

    async def receive(self) -> dict[str, Any]:
        return await self._inbox.get()

    async def send_text(self, data: str) -> None:
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.application_state = WebSocketState.DISCONNECTED
        self.close_code = code

    def push(self, message: dict[str, Any]) -> None:
        self._inbox.put_nowait(message)

    def types(self) -> list[str]:
        return [decode(raw).type for raw in self.sent]


def _start(ws: FakeWebSocket, manager) -> asyncio.Task[None]:
    return asyncio.create_task(
        ws_relay(ws, manager, verifier=None, token=None, user_id="a", agent_id=None),
    )


@pytest.mark.asyncio
async def test_liveness_terminate_ends_endpoint_quietly(manager):
    ws = FakeWebSocket()
    endpoint = _start(ws, manager)
    await wait_until(lambda: ws.types() == ["connected"])
    [conn] = manager.connections()

    await manager.terminate(conn.id)
    await asyncio.wait_for(endpoint, 1.0)

    assert ws.close_code == 1001
    assert manager.connection_count == 0


@pytest.mark.asyncio
async def test_cancelling_the_endpoint_propagates(manager):
    ws = FakeWebSocket()
    endpoint = _start(ws, manager)
    await wait_until(lambda: manager.connection_count == 1)

    endpoint.cancel()
    with pytest.raises(asyncio.CancelledError):
        await endpoint
    assert manager.connection_count == 0


@pytest.mark.asyncio
async def test_binary_frames_are_decoded(manager):
    ws = FakeWebSocket()
    endpoint = _start(ws, manager)
    await wait_until(lambda: ws.types() == ["connected"])

    ws.push({"type": "websocket.receive", "bytes": b'{"type": "heartbeat"}'})
    ws.push({"type": "websocket.receive", "bytes": b"\xff\xfe"})
    ws.push({"type": "websocket.receive", "text": '{"type": "ping"}'})
    await wait_until(lambda: len(ws.sent) == 4)
    ws.push({"type": "websocket.disconnect", "code": 1000})
    await asyncio.wait_for(endpoint, 1.0)

    assert ws.types() == ["connected", "heartbeat_ack", "error", "pong"]
    assert manager.connection_count == 0


def test_frame_without_payload_is_a_parse_error():
    assert _frame_data({"type": "websocket.receive", "text": "{}"}) == "{}"
    assert _frame_data({"type": "websocket.receive", "bytes": b"{}"}) == b"{}"
    with pytest.raises(EnvelopeParseError):
        _frame_data({"type": "websocket.receive"})
