"""Per-request timing for the HTTP surface of the relay."""
from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

PROBE_PATHS = frozenset({"/healthz", "/readyz", "/health"})


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Adds ``Server-Timing`` and logs each request with the live socket count.

    Orchestrator probes are logged at DEBUG so they do not drown relay traffic.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["Server-Timing"] = f"relay;dur={elapsed_ms:.1f}"

        manager = getattr(request.app.state, "connections", None)
        level = logging.DEBUG if request.url.path in PROBE_PATHS else logging.INFO
        logger.log(
            level,
            "%s %s -> %d in %.1fms (ws clients=%s)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            manager.connection_count if manager is not None else "-",
        )
        return response
