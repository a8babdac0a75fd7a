from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class HeartbeatSender:
    """Calls ``beat`` every ``interval`` seconds while ``is_connected`` holds."""

    def __init__(
        self,
        interval: float,
        beat: Callable[[], Awaitable[None]],
        is_connected: Callable[[], bool],
    ) -> None:
        self._interval = interval
        self._beat = beat
        self._is_connected = is_connected
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.stop()
        self._task = asyncio.create_task(self._run(), name="relay-heartbeat")

    def stop(self) -> None:
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            if not self._is_connected():
                continue
            try:
                await self._beat()
            except Exception:
                logger.warning("Heartbeat send failed", exc_info=True)
