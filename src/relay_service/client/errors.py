from __future__ import annotations


class ClientError(Exception):
    """Base error raised by the relay client."""


class ConnectError(ClientError):
    """The socket could not be opened."""


class ConnectTimeoutError(ConnectError):
    """The socket did not open within ``connect_timeout``."""
