from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterator

from relay_service.infrastructure.ws.protocol import Envelope

logger = logging.getLogger(__name__)


class OutboundQueue:
    """FIFO buffer for sends attempted while offline.

    Bounded at ``maxsize``; when full the oldest envelope is evicted.
    """

    def __init__(self, maxsize: int = 1000) -> None:
        self._items: deque[Envelope] = deque()
        self._maxsize = maxsize
        self.evicted = 0

    def append(self, envelope: Envelope) -> None:
        if len(self._items) >= self._maxsize:
            dropped = self._items.popleft()
            self.evicted += 1
            logger.warning(
                "Outbound queue full (%d), dropped oldest %s message %s",
                self._maxsize, dropped.type, dropped.message_id,
            )
        self._items.append(envelope)

    def drain(self) -> Iterator[Envelope]:
        """Pop items oldest-first; each item leaves the queue before it is yielded."""
        while self._items:
            yield self._items.popleft()

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)
