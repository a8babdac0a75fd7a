"""Exponential-backoff reconnection scheduling."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]
AttemptFn = Callable[[], Awaitable[None]]


class ReconnectionController:
    """Counts attempts and owns the single pending reconnect timer.

    Delay for attempt ``n`` (1-indexed) is ``min(base_delay * 2**(n-1), max_delay)``.
    Once ``max_attempts`` have been scheduled, ``schedule`` refuses until
    ``reset`` is called.
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        max_attempts: int = 5,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self._sleep = sleep
        self._attempts = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def exhausted(self) -> bool:
        return self._attempts >= self.max_attempts

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    def schedule(self, attempt_fn: AttemptFn) -> float | None:
        """Start the next timer; returns its delay, or ``None`` when exhausted."""
        if self.exhausted:
            return None
        self.cancel()
        self._attempts += 1
        delay = self.delay_for(self._attempts)
        self._task = asyncio.create_task(
            self._fire(delay, attempt_fn), name=f"relay-reconnect-{self._attempts}",
        )
        logger.info(
            "Reconnect attempt %d/%d in %.1fs", self._attempts, self.max_attempts, delay,
        )
        return delay

    def reset(self) -> None:
        self._attempts = 0

    def cancel(self) -> None:
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
        self._task = None

    async def _fire(self, delay: float, attempt_fn: AttemptFn) -> None:
        await self._sleep(delay)
        # the attempt may schedule the next timer, which must not cancel this task
        self._task = None
        await attempt_fn()
