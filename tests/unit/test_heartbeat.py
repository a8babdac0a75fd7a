from __future__ import annotations

import asyncio

import pytest

from relay_service.client.heartbeat import HeartbeatSender


@pytest.mark.asyncio
async def test_beats_only_while_connected():
    connected = False
    beats = 0
    beat_seen = asyncio.Event()

    async def beat() -> None:
        nonlocal beats
        beats += 1
        beat_seen.set()

    sender = HeartbeatSender(0.005, beat, lambda: connected)
    sender.start()
    await asyncio.sleep(0.03)
    assert beats == 0

    connected = True
    await asyncio.wait_for(beat_seen.wait(), 1.0)
    sender.stop()

    assert beats >= 1
    assert not sender.running


@pytest.mark.asyncio
async def test_failing_beat_keeps_running():
    calls = 0

    async def beat() -> None:
        nonlocal calls
        calls += 1
        raise RuntimeError("boom")

    sender = HeartbeatSender(0.001, beat, lambda: True)
    sender.start()
    await asyncio.sleep(0.05)
    sender.stop()

    assert calls >= 2
