"""
MODULE OVERVIEW:
Owns the WebSocket and the Disconnected -> Connecting -> Connected state machine.

WHAT IS HAPPENING HERE:
`connect()` flips the state to CONNECTING and spawns one background task that
opens the socket, reports CONNECTED, and then feeds every text frame through
the codec into the dispatcher, strictly in arrival order. Whatever ends that
task (clean close, transport error, refused connection) lands in
`handle_close()`, which moves to DISCONNECTED and schedules exactly one retry
after a fixed delay. There is no backoff: the retry policy is "wait, then try
the whole thing again", optionally bounded by `max_reconnect_attempts`.

This manager is the only thing allowed to write to the socket. `send()` is
best-effort: while not CONNECTED the envelope is dropped, never queued.
"""
import asyncio
from typing import Any, AsyncContextManager, Callable, Protocol
from urllib.parse import urlencode

import websockets
from loguru import logger
from pydantic import BaseModel

from pagichat.client.render import RenderSink
from pagichat.client.scheduler import Scheduler
from pagichat.shared.codec import EnvelopeDecodeError, decode_envelope, encode_envelope
from pagichat.shared.models import ConnectionState, Identity, InboundEnvelope

Connector = Callable[[str], AsyncContextManager[Any]]


class Transport(Protocol):
    def send(self, text: str) -> None: ...


class WebSocketTransport:
    """Fire-and-forget writer around an open websocket."""

    def __init__(self, ws: Any):
        self._ws = ws
        self._pending: set[asyncio.Task] = set()

    def send(self, text: str) -> None:
        task = asyncio.get_running_loop().create_task(self._ws.send(text))
        self._pending.add(task)
        task.add_done_callback(self._on_sent)

    def _on_sent(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"protocol=websocket event=send_failed reason='{task.exception()}'")


def default_connector(url: str) -> AsyncContextManager[Any]:
    # Liveness is handled by the server's application-level ping/pong.
    return websockets.connect(url, ping_interval=None)


class ConnectionManager:
    def __init__(
        self,
        ws_url: str,
        sink: RenderSink,
        scheduler: Scheduler,
        on_envelope: Callable[[InboundEnvelope], None],
        reconnect_delay_ms: int = 2000,
        max_reconnect_attempts: int | None = None,
        connector: Connector = default_connector,
    ):
        self.ws_url = ws_url
        self.sink = sink
        self.scheduler = scheduler
        self.on_envelope = on_envelope
        self.reconnect_delay_ms = reconnect_delay_ms
        self.max_reconnect_attempts = max_reconnect_attempts
        self.connector = connector

        self.state = ConnectionState.DISCONNECTED
        self.identity: Identity | None = None
        self.transport: Transport | None = None
        self.reconnect_attempts = 0
        self.connect_count = 0

        self._task: asyncio.Task | None = None
        self._reconnect_handle: Any = None
        self._closing = False

    # ==========================
    # LIFECYCLE
    # ==========================
    def build_url(self, identity: Identity) -> str:
        return f"{self.ws_url}?{urlencode(identity.query_params())}"

    def connect(self, identity: Identity) -> None:
        """Start one connection attempt. The identity object is kept and re-read on every retry."""
        self.identity = identity
        self._closing = False
        if self._reconnect_handle is not None:
            self.scheduler.cancel(self._reconnect_handle)
            self._reconnect_handle = None
        self.connect_count += 1

        url = self.build_url(identity)
        self._set_state(ConnectionState.CONNECTING)
        logger.info(f"name={identity.display_name} session={identity.session_id} event=connect attempt={self.connect_count}")
        self._task = asyncio.get_running_loop().create_task(self._run(url))

    async def _run(self, url: str) -> None:
        reason = "closed"
        try:
            async with self.connector(url) as ws:
                self.handle_open(WebSocketTransport(ws))
                async for raw in ws:
                    self.handle_frame(raw)
        except asyncio.CancelledError:
            reason = "cancelled"
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as e:
            reason = repr(e)
        finally:
            self.handle_close(reason)

    def handle_open(self, transport: Transport) -> None:
        self.transport = transport
        self.reconnect_attempts = 0
        self._set_state(ConnectionState.CONNECTED)

    def handle_frame(self, raw: str | bytes) -> None:
        try:
            msg = decode_envelope(raw)
        except EnvelopeDecodeError as e:
            logger.warning(f"protocol=websocket event=dropped_frame reason='{e}'")
            return
        # A failing handler must not look like a transport failure.
        try:
            self.on_envelope(msg)
        except Exception:
            logger.exception(f"protocol=websocket event=handler_failed type={msg.type}")

    def handle_close(self, reason: str) -> None:
        self.transport = None
        if self.state is ConnectionState.DISCONNECTED:
            return
        self._set_state(ConnectionState.DISCONNECTED)
        logger.warning(f"protocol=websocket event=disconnect reason='{reason}'")
        self._schedule_reconnect()

    # ==========================
    # RECONNECT POLICY
    # ==========================
    def _schedule_reconnect(self) -> None:
        if self._closing:
            return
        if self.max_reconnect_attempts is not None and self.reconnect_attempts >= self.max_reconnect_attempts:
            logger.warning(f"event=reconnect_abandoned attempts={self.reconnect_attempts}")
            return
        self.reconnect_attempts += 1
        logger.info(f"event=reconnect_scheduled attempt={self.reconnect_attempts} delay_ms={self.reconnect_delay_ms}")
        self._reconnect_handle = self.scheduler.after(self.reconnect_delay_ms, self._reconnect)

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        if self._closing or self.identity is None:
            return
        if self.state is not ConnectionState.DISCONNECTED:
            return
        self.connect(self.identity)

    # ==========================
    # OUTBOUND
    # ==========================
    def send(self, envelope: BaseModel) -> bool:
        if self.state is not ConnectionState.CONNECTED or self.transport is None:
            logger.debug(f"event=send_discarded state={self.state.value}")
            return False
        self.transport.send(encode_envelope(envelope))
        return True

    async def close(self) -> None:
        self._closing = True
        if self._reconnect_handle is not None:
            self.scheduler.cancel(self._reconnect_handle)
            self._reconnect_handle = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    def _set_state(self, state: ConnectionState) -> None:
        self.state = state
        self.sink.set_status(state)
