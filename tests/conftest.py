"""Shared test fixtures."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import jwt
import pytest
from websockets.exceptions import ConnectionClosedError

from relay_service.application.dto.identity import Identity
from relay_service.config import settings
from relay_service.domain.value_objects.enums import IdentityKind
from relay_service.infrastructure.ws.manager import ConnectionManager
from relay_service.infrastructure.ws.protocol import Envelope, decode, encode


def make_token(sub: str = "42", kind: str = "user", **claims: Any) -> str:
    return jwt.encode(
        {"sub": sub, "kind": kind, **claims},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


@pytest.fixture
def user_identity() -> Identity:
    return Identity(kind=IdentityKind.USER, user_id="42")


@pytest.fixture
def service_identity() -> Identity:
    return Identity(kind=IdentityKind.SERVICE, user_id="svc-rfq", role="service")


@pytest.fixture
def manager() -> ConnectionManager:
    return ConnectionManager(presence_room="agents")


@dataclass
class FakeTransport:
    """Server-side socket double recording every frame written to it."""

    sent: list[str] = field(default_factory=list)
    is_open: bool = True
    fail_sends: bool = False
    close_code: int | None = None

    async def send_text(self, data: str) -> None:
        if self.fail_sends:
            raise RuntimeError("socket write failed")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.is_open = False
        self.close_code = code

    @property
    def envelopes(self) -> list[Envelope]:
        return [decode(raw) for raw in self.sent]

    def types(self) -> list[str]:
        return [env.type for env in self.envelopes]


_CLOSED = object()


class FakeClientSocket:
    """Client-side socket double: feed inbound frames, inspect outbound ones."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self.close_code: int | None = None
        self.close_reason = ""
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionClosedError(None, None)
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(_CLOSED)

    def feed(self, envelope: Envelope | str) -> None:
        self._inbox.put_nowait(envelope if isinstance(envelope, str) else encode(envelope))

    def drop(self, code: int = 1006) -> None:
        """Simulate an unclean close from the network side."""
        self.closed = True
        self.close_code = code
        self._inbox.put_nowait(_CLOSED)

    @property
    def envelopes(self) -> list[Envelope]:
        return [decode(raw) for raw in self.sent]

    def __aiter__(self) -> FakeClientSocket:
        return self

    async def __anext__(self) -> str:
        item = await self._inbox.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """Hands out queued outcomes: a socket to return or an exception to raise."""

    def __init__(self, *outcomes: Any) -> None:
        self._outcomes = list(outcomes)
        self.urls: list[str] = []

    def push(self, outcome: Any) -> None:
        self._outcomes.append(outcome)

    async def __call__(self, url: str) -> FakeClientSocket:
        self.urls.append(url)
        outcome = self._outcomes.pop(0) if self._outcomes else ConnectionRefusedError("refused")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingSleep:
    """Replaces asyncio.sleep in the reconnection controller."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


async def wait_until(predicate: Any, timeout: float = 1.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)
