from __future__ import annotations

from fastapi import WebSocket
from starlette.websockets import WebSocketState


class StarletteTransport:
    """Adapts a Starlette ``WebSocket`` to the ``Transport`` port."""

    def __init__(self, ws: WebSocket) -> None:
        self._ws = ws

    @property
    def is_open(self) -> bool:
        return (
            self._ws.client_state == WebSocketState.CONNECTED
            and self._ws.application_state == WebSocketState.CONNECTED
        )

    async def send_text(self, data: str) -> None:
        await self._ws.send_text(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self._ws.application_state == WebSocketState.DISCONNECTED:
            return
        await self._ws.close(code=code, reason=reason)
