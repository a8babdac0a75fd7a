"""Client-side connection manager for the relay websocket."""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol, TypeVar
from urllib.parse import urlencode

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from relay_service.client.config import ClientConfig, ConnectOptions
from relay_service.client.errors import ClientError, ConnectError, ConnectTimeoutError
from relay_service.client.events import (
    ClientEvent,
    Connected,
    Disconnected,
    MaxReconnectAttemptsReached,
    ParseError,
    StateChanged,
    to_event,
)
from relay_service.client.heartbeat import HeartbeatSender
from relay_service.client.queue import OutboundQueue
from relay_service.client.reconnect import ReconnectionController, SleepFn
from relay_service.domain.value_objects.enums import ConnectionState, MessageType
from relay_service.domain.value_objects.ids import new_message_id
from relay_service.infrastructure.ws.protocol import (
    Envelope,
    EnvelopeParseError,
    decode,
    encode,
)

logger = logging.getLogger(__name__)

E = TypeVar("E")
Handler = Callable[[E], Any]


class ClientSocket(Protocol):
    async def send(self, message: str) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


Connector = Callable[[str], Awaitable[ClientSocket]]


async def _websockets_connector(url: str) -> ClientSocket:
    # liveness is handled with heartbeat envelopes, not protocol pings
    return await ws_connect(url, open_timeout=None, ping_interval=None)


class RelayClient:
    """Owns one relay socket, its state machine and the typed event stream.

    Create one per application and pass it to the components that need it.
    Transport failures never raise out of the client except from
    ``connect()``; they surface as ``StateChanged``, ``Disconnected`` and
    ``MaxReconnectAttemptsReached`` events.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        connector: Connector = _websockets_connector,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.config = config or ClientConfig()
        self._connector = connector
        self._options: ConnectOptions | None = None
        self._state = ConnectionState.DISCONNECTED
        self._socket: ClientSocket | None = None
        self._reader: asyncio.Task[None] | None = None
        self._connecting: asyncio.Task[None] | None = None
        self._send_lock = asyncio.Lock()
        self._handlers: dict[type, list[Handler[Any]]] = {}
        self._queue = OutboundQueue(self.config.max_queue_size)
        self._reconnect = ReconnectionController(
            base_delay=self.config.reconnect_base_delay,
            max_delay=self.config.reconnect_max_delay,
            max_attempts=self.config.max_reconnect_attempts,
            sleep=sleep,
        )
        self._heartbeat = HeartbeatSender(
            self.config.heartbeat_interval, self._send_heartbeat, lambda: self.is_connected,
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self._socket is not None

    @property
    def queued_count(self) -> int:
        return len(self._queue)

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect.attempts

    def on(self, event_type: type[E], handler: Handler[E]) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def off(self, event_type: type[E], handler: Handler[E]) -> None:
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def stats(self) -> dict[str, Any]:
        return {
            "connection_state": str(self._state),
            "reconnect_attempts": self._reconnect.attempts,
            "queued_messages": len(self._queue),
            "evicted_messages": self._queue.evicted,
            "is_connected": self.is_connected,
        }

    async def connect(self, options: ConnectOptions | None = None) -> None:
        """Open the socket; returns immediately if already connected.

        Calls made while an attempt is in flight wait for that attempt instead
        of dialing again. Raises ``ConnectError`` (or ``ConnectTimeoutError``)
        when the attempt fails. An explicit call resets the reconnection counter.
        """
        if options is not None:
            self._options = options
        if self._options is None:
            raise ClientError("connect() needs ConnectOptions on first use")
        if self.is_connected:
            return
        if self._connecting is None or self._connecting.done():
            self._connecting = asyncio.create_task(self._open(), name="relay-connect")
        await self._connecting

    async def _open(self) -> None:
        self._reconnect.cancel()
        self._reconnect.reset()
        await self._set_state(ConnectionState.CONNECTING)
        try:
            socket = await self._dial()
        except ConnectError:
            await self._set_state(ConnectionState.DISCONNECTED)
            raise
        if self._state != ConnectionState.CONNECTING:
            await socket.close(1000, "User disconnected")
            raise ClientError("Connection attempt aborted by disconnect()")
        await self._on_open(socket)

    async def disconnect(self) -> None:
        """Clean close: no retry, queued messages are discarded."""
        self._reconnect.cancel()
        self._heartbeat.stop()
        socket, self._socket = self._socket, None
        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
        if socket is not None:
            try:
                await socket.close(1000, "User disconnected")
            except (OSError, WebSocketException):
                logger.debug("Error while closing relay socket", exc_info=True)
        dropped = len(self._queue)
        self._queue.clear()
        if dropped:
            logger.info("Discarded %d queued messages on disconnect", dropped)
        await self._set_state(ConnectionState.DISCONNECTED)
        if socket is not None:
            await self._emit(Disconnected(1000, "User disconnected", clean=True))

    async def destroy(self) -> None:
        await self.disconnect()
        self._handlers.clear()

    async def send(
        self, msg_type: str, payload: Any = None, target_room: str | None = None,
    ) -> Envelope:
        """Transmit now, or queue until the next successful connection."""
        envelope = Envelope(
            type=str(msg_type),
            payload=payload,
            target_room=target_room,
            sender_id=self._options.user_id if self._options else None,
            message_id=new_message_id(),
        )
        await self._send_envelope(envelope, queue_if_offline=True)
        return envelope

    async def join_room(self, room: str) -> Envelope:
        return await self.send(MessageType.JOIN_ROOM, {"room": room})

    async def leave_room(self, room: str) -> Envelope:
        return await self.send(MessageType.LEAVE_ROOM, {"room": room})

    async def broadcast(self, room: str, msg_type: str, payload: Any = None) -> Envelope:
        return await self.send(msg_type, payload, target_room=room)

    async def send_typing_indicator(self, room: str, is_typing: bool) -> Envelope:
        return await self.send(MessageType.TYPING_INDICATOR, {"isTyping": is_typing}, target_room=room)

    async def set_user_status(self, room: str, status: str) -> Envelope:
        return await self.send(MessageType.USER_ACTIVITY, {"status": status}, target_room=room)

    async def send_collaboration_message(
        self, room: str, message: str, metadata: dict[str, Any] | None = None,
    ) -> Envelope:
        payload = {"message": message, "metadata": metadata}
        return await self.send(MessageType.COLLABORATION_MESSAGE, payload, target_room=room)

    async def notify_users(self, user_ids: list[str], payload: dict[str, Any]) -> Envelope:
        return await self.send(MessageType.NOTIFICATION, {**payload, "targetUserIds": user_ids})

    async def authenticate_agent(self, agent_id: str, token: str | None = None) -> Envelope:
        payload = {"agentId": agent_id}
        if token:
            payload["token"] = token
        return await self.send(MessageType.AUTHENTICATE, payload)

    async def _send_heartbeat(self) -> None:
        envelope = Envelope(type=MessageType.HEARTBEAT, payload={"timestamp": int(time.time() * 1000)})
        await self._send_envelope(envelope, queue_if_offline=False)

    async def _send_envelope(self, envelope: Envelope, *, queue_if_offline: bool) -> None:
        async with self._send_lock:
            socket = self._socket
            if self.is_connected and socket is not None:
                try:
                    await socket.send(encode(envelope))
                    return
                except ConnectionClosed:
                    logger.warning("Socket closed while sending %s", envelope.type)
            if queue_if_offline:
                self._queue.append(envelope)
                logger.warning(
                    "Relay not connected, message queued: %s (queued=%d)",
                    envelope.type, len(self._queue),
                )

    async def _flush_queue(self, socket: ClientSocket) -> None:
        async with self._send_lock:
            sent = 0
            for envelope in self._queue.drain():
                try:
                    await socket.send(encode(envelope))
                except ConnectionClosed:
                    logger.warning("Socket closed during queue flush, %s dropped", envelope.message_id)
                    break
                sent += 1
            if sent:
                logger.info("Flushed %d queued messages", sent)

    def _url(self) -> str:
        assert self._options is not None
        params = {"userId": self._options.user_id}
        if self._options.token:
            params["token"] = self._options.token
        if self._options.agent_id:
            params["agentId"] = self._options.agent_id
        return f"{self.config.base_url.rstrip('/')}{self.config.path}?{urlencode(params)}"

    async def _dial(self) -> ClientSocket:
        url = self._url()
        try:
            return await asyncio.wait_for(self._connector(url), timeout=self.config.connect_timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Relay connect timed out after %.1fs", self.config.connect_timeout)
            raise ConnectTimeoutError(f"Connection timeout after {self.config.connect_timeout}s") from exc
        except (OSError, WebSocketException) as exc:
            logger.warning("Relay connect failed: %s", exc)
            raise ConnectError(str(exc)) from exc

    async def _on_open(self, socket: ClientSocket) -> None:
        self._socket = socket
        self._reconnect.reset()
        # no await between the state flip and the flush taking the send lock,
        # so queued envelopes go out before any send issued after this point
        previous, self._state = self._state, ConnectionState.CONNECTED
        self._reader = asyncio.create_task(self._read_loop(socket), name="relay-reader")
        self._heartbeat.start()
        await self._flush_queue(socket)
        await self._emit(StateChanged(previous, ConnectionState.CONNECTED))
        logger.info("Relay connected as %s", self._options.user_id if self._options else None)
        await self._emit(Connected(self._options.user_id if self._options else None))

    async def _read_loop(self, socket: ClientSocket) -> None:
        try:
            async for raw in socket:
                await self._handle_raw(raw)
        except ConnectionClosed:
            pass
        await self._on_unclean_close(socket)

    async def _handle_raw(self, raw: str | bytes) -> None:
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        try:
            envelope = decode(text)
        except EnvelopeParseError as exc:
            logger.warning("Failed to parse relay message: %s", exc)
            await self._emit(ParseError(raw=text, error=str(exc)))
            return
        if envelope.type == MessageType.PING:
            await self._send_envelope(Envelope(type=MessageType.PONG), queue_if_offline=False)
            return
        event = to_event(envelope)
        if event is not None:
            await self._emit(event)

    async def _on_unclean_close(self, socket: ClientSocket) -> None:
        if socket is not self._socket:
            return
        self._socket = None
        self._reader = None
        self._heartbeat.stop()
        code = getattr(socket, "close_code", None)
        reason = getattr(socket, "close_reason", None) or ""
        logger.warning("Relay connection lost (code=%s reason=%r)", code, reason)
        await self._emit(Disconnected(code, reason, clean=False))
        await self._schedule_reconnect()

    async def _schedule_reconnect(self) -> None:
        if self._reconnect.schedule(self._reconnect_attempt) is not None:
            await self._set_state(ConnectionState.RECONNECTING)
            return
        logger.error("Max reconnection attempts reached (%d)", self._reconnect.attempts)
        await self._set_state(ConnectionState.DISCONNECTED)
        await self._emit(MaxReconnectAttemptsReached(self._reconnect.attempts))

    async def _reconnect_attempt(self) -> None:
        try:
            socket = await self._dial()
        except ConnectError as exc:
            logger.warning("Reconnection attempt %d failed: %s", self._reconnect.attempts, exc)
            if self._state == ConnectionState.RECONNECTING:
                await self._schedule_reconnect()
            return
        if self._state != ConnectionState.RECONNECTING:
            # an explicit connect() or disconnect() took over while dialing
            await socket.close(1000, "Superseded")
            return
        await self._on_open(socket)

    async def _set_state(self, state: ConnectionState) -> None:
        previous, self._state = self._state, state
        if previous != state:
            await self._emit(StateChanged(previous, state))

    async def _emit(self, event: ClientEvent) -> None:
        for handler in list(self._handlers.get(type(event), ())):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Relay event handler %r failed for %s", handler, type(event).__name__)
