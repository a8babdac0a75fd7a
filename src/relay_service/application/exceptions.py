from __future__ import annotations


class AppError(Exception):
    """Base application error.

    ``code`` is the machine-readable value sent back to a websocket client
    inside an ``error`` envelope.
    """

    code = "app_error"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class ForbiddenError(AppError):
    code = "forbidden"


class ValidationError(AppError):
    code = "invalid_data"


class AuthenticationError(AppError):
    code = "unauthenticated"
