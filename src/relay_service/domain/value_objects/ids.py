from __future__ import annotations

import secrets
import string
import time
from typing import NewType

ConnectionId = NewType("ConnectionId", str)

_ALPHABET = string.ascii_lowercase + string.digits


def _suffix(length: int = 9) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def new_connection_id() -> ConnectionId:
    """Process-unique id assigned at accept time."""
    return ConnectionId(f"client-{int(time.time() * 1000)}-{_suffix()}")


def new_message_id() -> str:
    return f"msg_{int(time.time() * 1000)}_{_suffix()}"
