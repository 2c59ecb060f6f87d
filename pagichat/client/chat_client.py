"""
MODULE OVERVIEW:
The session controller: one object owning one chat session end to end.

WHAT IS HAPPENING HERE:
Everything that used to be "global" in a browser chat page (the socket, the
session id, the active room, the member list) hangs off a single ChatClient
instance. User actions from the front end (log in, send text, switch room)
come in through its methods and leave as outbound envelopes through the
ConnectionManager, which silently drops them while not connected. Several
ChatClients can live side by side, which is how the tests drive them.
"""
from typing import Any

import httpx
from loguru import logger

from pagichat.client.connection_manager import ConnectionManager, Connector, default_connector
from pagichat.client.dispatcher import MessageDispatcher
from pagichat.client.identity_store import IdentityStore
from pagichat.client.presence import PresenceTracker
from pagichat.client.render import RenderSink
from pagichat.client.rooms import RoomState, normalize_room_name
from pagichat.client.scheduler import Scheduler
from pagichat.client.stats_poller import StatsPoller
from pagichat.shared.config import Settings, settings as default_settings
from pagichat.shared.models import ChatMessage, ChatSend, ConnectionState, InboundEnvelope, JoinRequest


class ChatClient:
    def __init__(
        self,
        sink: RenderSink,
        store: IdentityStore,
        scheduler: Scheduler,
        settings: Settings = default_settings,
        connector: Connector = default_connector,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.sink = sink
        self.store = store
        self.scheduler = scheduler
        self.join_timeout_ms = settings.JOIN_TIMEOUT_MS

        self.session = store.load()
        self.rooms = RoomState(settings.DEFAULT_ROOM)
        self.presence = PresenceTracker()

        self.connection = ConnectionManager(
            settings.ws_url,
            sink,
            scheduler,
            on_envelope=self._on_envelope,
            reconnect_delay_ms=settings.RECONNECT_DELAY_MS,
            max_reconnect_attempts=settings.MAX_RECONNECT_ATTEMPTS,
            connector=connector,
        )
        self.dispatcher = MessageDispatcher(
            self.session,
            store,
            self.rooms,
            self.presence,
            sink,
            send=self.connection.send,
            rejoin_on_resume=settings.REJOIN_ON_RESUME,
        )
        self.poller = StatsPoller(
            settings.stats_url,
            sink,
            scheduler,
            interval_ms=settings.STATS_POLL_INTERVAL_MS,
            timeout_s=settings.STATS_TIMEOUT_S,
            client=http_client,
        )
        self._join_timer: Any = None

    def _on_envelope(self, msg: InboundEnvelope) -> None:
        self.dispatcher.dispatch(msg)

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    # ==========================
    # STARTUP / SHUTDOWN
    # ==========================
    def start(self) -> None:
        """Begin stats polling and auto-login when a display name is already stored."""
        self.poller.start()
        if self.session.display_name:
            self.sink.set_display_name(self.session.display_name)
            self.connection.connect(self.session)

    def login(self, name: str) -> bool:
        name = name.strip()
        if not name:
            return False
        if self.connection.state is not ConnectionState.DISCONNECTED:
            logger.debug(f"event=login_ignored state={self.connection.state.value}")
            return False
        self.session.display_name = name
        self.store.save_display_name(name)
        self.sink.set_display_name(name)
        self.connection.connect(self.session)
        return True

    async def stop(self) -> None:
        if self._join_timer is not None:
            self.scheduler.cancel(self._join_timer)
            self._join_timer = None
        await self.poller.stop()
        await self.connection.close()

    # ==========================
    # USER ACTIONS
    # ==========================
    def send_chat(self, text: str) -> bool:
        text = text.strip()
        if not text or self.rooms.active is None:
            return False
        return self.connection.send(ChatSend(room=self.rooms.active, text=text))

    def switch_room(self, raw_name: str) -> bool:
        room = normalize_room_name(raw_name)
        if not room or room == self.rooms.active:
            return False
        if not self.connection.send(JoinRequest(room=room)):
            return False

        self.rooms.request(room)
        if self._join_timer is not None:
            self.scheduler.cancel(self._join_timer)
        if self.join_timeout_ms > 0:
            self._join_timer = self.scheduler.after(self.join_timeout_ms, lambda: self._join_timed_out(room))
        return True

    def _join_timed_out(self, room: str) -> None:
        self._join_timer = None
        if self.rooms.pending != room:
            return
        self.rooms.clear_pending()
        logger.warning(f"room={room} event=join_timeout timeout_ms={self.join_timeout_ms}")
        self.sink.append_message(ChatMessage(kind="system", text=f"Joining #{room} timed out", room=self.rooms.active))
