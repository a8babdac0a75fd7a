from __future__ import annotations

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from starlette.types import Message

from relay_service.api.deps import Manager, get_verifier
from relay_service.api.middleware.correlation_id import correlation_id_ctx
from relay_service.application.dto.identity import Identity
from relay_service.application.exceptions import AppError
from relay_service.application.ports.auth import TokenVerifier
from relay_service.config import settings
from relay_service.domain.entities.connection import Connection
from relay_service.domain.value_objects.enums import MessageType
from relay_service.infrastructure.ws.manager import ConnectionManager
from relay_service.infrastructure.ws.protocol import (
    Envelope,
    EnvelopeParseError,
    decode,
    encode,
    error_envelope,
)
from relay_service.infrastructure.ws.transport import StarletteTransport
from relay_service.services import envelope_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

AUTH_FAILED_CODE = 4001


async def _authenticate(verifier: TokenVerifier, token: str) -> Identity | None:
    try:
        return await verifier.verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket(settings.WS_PATH)
async def ws_relay(
    websocket: WebSocket,
    manager: Manager,
    verifier: Annotated[TokenVerifier, Depends(get_verifier)],
    token: str | None = Query(None),
    user_id: str | None = Query(None, alias="userId"),
    agent_id: str | None = Query(None, alias="agentId"),
) -> None:
    identity: Identity | None = None
    if token:
        identity = await _authenticate(verifier, token)
        if identity is None:
            await websocket.close(code=AUTH_FAILED_CODE, reason="Authentication failed")
            return
        if user_id and identity.user_id != user_id:
            logger.info("WS userId=%s does not match token subject %s", user_id, identity.user_id)
        identity = envelope_service.identity_for_agent(identity, agent_id)
    elif not settings.WS_ALLOW_ANONYMOUS:
        await websocket.close(code=AUTH_FAILED_CODE, reason="Authentication required")
        return

    await websocket.accept()
    connection = manager.register(StarletteTransport(websocket), identity)
    # the reader task copies this context, so its log lines carry the connection id
    correlation_id_ctx.set(connection.id)

    reader = asyncio.create_task(
        _serve(websocket, connection, manager, verifier), name=f"ws-reader-{connection.id}",
    )
    manager.attach_reader(connection.id, reader)
    try:
        await reader
    except WebSocketDisconnect:
        pass
    except asyncio.CancelledError:
        # terminate() cancels only the reader; cancellation of this task itself propagates
        current = asyncio.current_task()
        if current is None or current.cancelling():
            raise
        logger.info("WS %s terminated by the relay", connection.id)
    except Exception:
        logger.exception("WS error for %s", connection.id)
    finally:
        await manager.disconnect(connection.id)


async def _serve(
    ws: WebSocket,
    connection: Connection,
    manager: ConnectionManager,
    verifier: TokenVerifier,
) -> None:
    await envelope_service.reply(
        connection,
        Envelope(type=MessageType.CONNECTED, payload={"clientId": connection.id}),
    )
    if connection.agent_id:
        await envelope_service.announce_agent(connection, manager)
    await _read_loop(ws, connection, manager, verifier)


def _frame_data(message: Message) -> str | bytes:
    """Text and binary frames both carry a JSON envelope."""
    if message.get("text") is not None:
        return message["text"]
    if message.get("bytes") is not None:
        return message["bytes"]
    raise EnvelopeParseError("Empty frame")


async def _read_loop(
    ws: WebSocket,
    connection: Connection,
    manager: ConnectionManager,
    verifier: TokenVerifier,
) -> None:
    while True:
        message = await ws.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
        try:
            envelope = decode(_frame_data(message))
        except EnvelopeParseError as exc:
            logger.info("Malformed envelope from %s: %s", connection.id, exc)
            await ws.send_text(encode(error_envelope(exc.code, "Invalid message format")))
            continue

        try:
            await envelope_service.handle_envelope(
                connection,
                envelope,
                manager,
                verifier=verifier,
                protected_prefixes=settings.WS_PROTECTED_ROOM_PREFIXES,
            )
        except AppError as exc:
            logger.info("Rejected %s from %s: %s", envelope.type, connection.id, exc.detail)
            reply = error_envelope(exc.code, exc.detail, type=envelope.type)
            reply.message_id = envelope.message_id
            await ws.send_text(encode(reply))
