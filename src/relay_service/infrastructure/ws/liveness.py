"""Periodic ping sweep that reclaims silently dead sockets."""
from __future__ import annotations

import asyncio
import logging

from relay_service.domain.value_objects.enums import MessageType
from relay_service.infrastructure.ws.manager import ConnectionManager
from relay_service.infrastructure.ws.protocol import Envelope, encode

logger = logging.getLogger(__name__)


class LivenessMonitor:
    """Background task running ``sweep`` every ``interval`` seconds.

    A connection that has not answered the previous sweep's ping is
    terminated, so a dead peer is reclaimed within two intervals.
    """

    def __init__(self, manager: ConnectionManager, interval: float) -> None:
        self._manager = manager
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name="ws-liveness-monitor")
        logger.info("Liveness monitor started (interval=%.1fs)", self._interval)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Liveness monitor stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Liveness sweep failed")

    async def sweep(self) -> int:
        """Run one ping cycle; returns the number of terminated connections."""
        terminated = 0
        raw_ping = encode(Envelope(type=MessageType.PING))
        for connection in self._manager.connections():
            if not connection.is_alive:
                logger.info("Terminating unresponsive connection %s", connection.id)
                await self._manager.terminate(connection.id)
                terminated += 1
                continue
            connection.is_alive = False
            try:
                await connection.socket.send_text(raw_ping)
            except Exception:
                logger.debug("Ping to %s failed", connection.id, exc_info=True)
        return terminated
