from __future__ import annotations

import asyncio

import pytest

from relay_service.client.reconnect import ReconnectionController
from tests.conftest import RecordingSleep


def test_delay_schedule_is_capped():
    controller = ReconnectionController(base_delay=1.0, max_delay=30.0, max_attempts=10)

    assert [controller.delay_for(n) for n in range(1, 8)] == [1, 2, 4, 8, 16, 30, 30]


@pytest.mark.asyncio
async def test_schedule_stops_at_max_attempts():
    sleep = RecordingSleep()
    controller = ReconnectionController(max_attempts=5, sleep=sleep)
    fired: list[int] = []

    async def attempt() -> None:
        fired.append(controller.attempts)

    delays = []
    for _ in range(6):
        delays.append(controller.schedule(attempt))
        await asyncio.sleep(0.01)

    assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, None]
    assert fired == [1, 2, 3, 4, 5]
    assert controller.exhausted


@pytest.mark.asyncio
async def test_new_schedule_cancels_pending_timer():
    gate = asyncio.Event()

    async def blocked_sleep(delay: float) -> None:
        await gate.wait()

    controller = ReconnectionController(sleep=blocked_sleep)
    fired: list[str] = []

    async def first() -> None:
        fired.append("first")

    async def second() -> None:
        fired.append("second")

    controller.schedule(first)
    await asyncio.sleep(0)
    controller.schedule(second)
    gate.set()
    await asyncio.sleep(0.01)

    assert fired == ["second"]


@pytest.mark.asyncio
async def test_reset_and_cancel():
    controller = ReconnectionController(max_attempts=1, sleep=RecordingSleep())

    async def attempt() -> None:
        pass

    controller.schedule(attempt)
    controller.cancel()
    assert not controller.pending
    assert controller.schedule(attempt) is None

    controller.reset()
    assert controller.attempts == 0
    assert controller.schedule(attempt) == 1.0
    controller.cancel()
