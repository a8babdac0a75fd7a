from __future__ import annotations

from typing import Protocol


class Transport(Protocol):
    """Server-side handle on one live socket."""

    @property
    def is_open(self) -> bool: ...

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...
