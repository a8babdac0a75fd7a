from __future__ import annotations

from relay_service.client.queue import OutboundQueue
from relay_service.infrastructure.ws.protocol import Envelope


def test_drain_is_fifo_and_empties_queue():
    queue = OutboundQueue()
    for name in ("m1", "m2", "m3"):
        queue.append(Envelope(type="broadcast", message_id=name))

    assert [env.message_id for env in queue.drain()] == ["m1", "m2", "m3"]
    assert len(queue) == 0


def test_full_queue_evicts_oldest():
    queue = OutboundQueue(maxsize=2)
    for name in ("m1", "m2", "m3"):
        queue.append(Envelope(type="broadcast", message_id=name))

    assert queue.evicted == 1
    assert [env.message_id for env in queue.drain()] == ["m2", "m3"]


def test_partial_drain_keeps_remaining_items():
    queue = OutboundQueue()
    for name in ("m1", "m2", "m3"):
        queue.append(Envelope(type="broadcast", message_id=name))

    for env in queue.drain():
        if env.message_id == "m1":
            break

    assert len(queue) == 2
