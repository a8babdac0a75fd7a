from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from relay_service.api.middleware.correlation_id import CorrelationIdMiddleware
from relay_service.api.middleware.metrics import RequestTimingMiddleware
from relay_service.api.v1.routers import health, rooms, ws
from relay_service.application.exceptions import (
    AuthenticationError,
    ForbiddenError,
    ValidationError,
)
from relay_service.config import settings
from relay_service.infrastructure.bus.redis_pubsub import RedisPubSubSubscriber
from relay_service.infrastructure.ws.liveness import LivenessMonitor
from relay_service.infrastructure.ws.manager import ConnectionManager
from relay_service.services.envelope_service import relay_upstream_event

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    manager: ConnectionManager = app.state.connections
    monitor: LivenessMonitor = app.state.liveness
    await monitor.start()

    subscriber: RedisPubSubSubscriber | None = None
    if settings.REDIS_INGRESS_ENABLED:
        app.state.redis = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
        logger.info("Redis connection pool created")
        subscriber = RedisPubSubSubscriber(
            app.state.redis,
            settings.REDIS_PUBSUB_CHANNEL,
            partial(relay_upstream_event, manager),
        )
        await subscriber.start()

    yield

    if subscriber is not None:
        await subscriber.stop()
        await app.state.redis.aclose()
        logger.info("Redis connection pool closed")
    await monitor.stop()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Realtime Relay Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    manager = ConnectionManager(presence_room=settings.WS_PRESENCE_ROOM)
    app.state.connections = manager
    app.state.liveness = LivenessMonitor(manager, settings.WS_HEARTBEAT_SECONDS)
    app.state.redis = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(rooms.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthenticationError)
    async def _unauthenticated(_req: Request, exc: AuthenticationError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"detail": exc.detail})

    @app.exception_handler(ForbiddenError)
    async def _forbidden(_req: Request, exc: ForbiddenError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.detail})
