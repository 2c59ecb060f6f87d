"""
MODULE OVERVIEW:
Routes every decoded server envelope to exactly one handler.

WHAT IS HAPPENING HERE:
A dict lookup on the envelope `type` picks the handler. Each handler mutates
only the state its type owns (session, rooms, presence) and then tells the
render sink what changed. Room-scoped types (`message`, `action`, `user_list`,
`user_joined`, `user_left`) are inert unless they target the active room: they
are dropped, not queued. Unknown types are ignored.
"""
from typing import Callable

from loguru import logger
from pydantic import BaseModel

from pagichat.client.heartbeat import HeartbeatResponder
from pagichat.client.identity_store import IdentityStore
from pagichat.client.presence import PresenceTracker
from pagichat.client.render import RenderSink
from pagichat.client.rooms import RoomState
from pagichat.shared.models import ChatMessage, HistoryEntry, Identity, InboundEnvelope, JoinRequest

_HISTORY_KINDS = {"action": "action", "system": "system"}


class MessageDispatcher:
    def __init__(
        self,
        session: Identity,
        store: IdentityStore,
        rooms: RoomState,
        presence: PresenceTracker,
        sink: RenderSink,
        send: Callable[[BaseModel], bool],
        rejoin_on_resume: bool = False,
    ):
        self.session = session
        self.store = store
        self.rooms = rooms
        self.presence = presence
        self.sink = sink
        self._send = send
        self.heartbeat = HeartbeatResponder(send)
        self.rejoin_on_resume = rejoin_on_resume

        self._handlers: dict[str, Callable[[InboundEnvelope], None]] = {
            "connected": self._on_connected,
            "resumed": self._on_resumed,
            "joined": self._on_joined,
            "left": self._on_left,
            "message": self._on_chat,
            "action": self._on_chat,
            "system": self._on_system,
            "user_joined": self._on_membership,
            "user_left": self._on_membership,
            "room_list": self._on_room_list,
            "user_list": self._on_user_list,
            "error": self._on_error,
            "ping": self._on_ping,
        }

    def dispatch(self, msg: InboundEnvelope) -> None:
        handler = self._handlers.get(msg.type)
        if handler is None:
            logger.debug(f"event=ignored type={msg.type}")
            return
        handler(msg)

    # ==========================
    # SESSION
    # ==========================
    def _on_connected(self, msg: InboundEnvelope) -> None:
        if msg.session_id:
            self.session.session_id = msg.session_id
            try:
                self.store.save_session_id(msg.session_id)
            except OSError as e:
                logger.warning(f"session={msg.session_id} event=persist_failed reason='{e}'")
        if msg.name:
            self.session.display_name = msg.name
        self.rooms.replace(msg.rooms or [])
        logger.info(f"name={self.session.display_name} session={self.session.session_id} event=connected rooms={len(self.rooms.known)}")

        self.sink.set_display_name(self.session.display_name)
        self._publish_rooms()
        self.sink.show_chat_view()

    def _on_resumed(self, msg: InboundEnvelope) -> None:
        if msg.session_id:
            self.session.session_id = msg.session_id
        if msg.name:
            self.session.display_name = msg.name
        logger.info(f"name={self.session.display_name} session={self.session.session_id} event=resumed active_room={self.rooms.active}")

        self.sink.set_display_name(self.session.display_name)
        self.sink.show_chat_view()

        if self.rejoin_on_resume and self.rooms.active:
            self._send(JoinRequest(room=self.rooms.active))

    # ==========================
    # ROOMS
    # ==========================
    def _on_joined(self, msg: InboundEnvelope) -> None:
        if not msg.room:
            logger.warning("event=joined_without_room")
            return
        room = msg.room
        self.rooms.activate(room)
        logger.info(f"room={room} event=joined history={len(msg.history or [])} users={len(msg.users or [])}")

        self.sink.set_active_room(room)
        self._publish_rooms()
        self.sink.clear_messages()
        for entry in msg.history or []:
            self.sink.append_message(self._from_history(entry, room))
        self._replace_presence(msg)

    def _on_left(self, msg: InboundEnvelope) -> None:
        if msg.room:
            self.rooms.remove(msg.room)
        self._publish_rooms()

    def _on_room_list(self, msg: InboundEnvelope) -> None:
        self.rooms.replace(msg.rooms or [])
        self._publish_rooms()

    # ==========================
    # MESSAGES
    # ==========================
    def _on_chat(self, msg: InboundEnvelope) -> None:
        if not self.rooms.is_active(msg.room):
            return
        self.sink.append_message(ChatMessage(
            kind="action" if msg.type == "action" else "chat",
            sender=msg.sender,
            text=msg.text or "",
            ts=msg.ts,
            room=msg.room,
        ))

    def _on_system(self, msg: InboundEnvelope) -> None:
        self._notice(msg.text or "", msg.room)

    def _on_error(self, msg: InboundEnvelope) -> None:
        logger.warning(f"event=server_error message='{msg.message}'")
        self._notice(f"Error: {msg.message or ''}")

    # ==========================
    # PRESENCE
    # ==========================
    def _on_membership(self, msg: InboundEnvelope) -> None:
        if not self.rooms.is_active(msg.room):
            return
        action = "joined" if msg.type == "user_joined" else "left"
        self._notice(f"{msg.user} {action}", msg.room)
        self._replace_presence(msg)

    def _on_user_list(self, msg: InboundEnvelope) -> None:
        if self.rooms.is_active(msg.room):
            self._replace_presence(msg)

    def _on_ping(self, msg: InboundEnvelope) -> None:
        self.heartbeat.respond(msg)

    # ==========================
    # HELPERS
    # ==========================
    def _notice(self, text: str, room: str | None = None) -> None:
        self.sink.append_message(ChatMessage(kind="system", text=text, room=room))

    def _replace_presence(self, msg: InboundEnvelope) -> None:
        self.presence.replace(msg.users)
        self.sink.set_presence(self.presence.current_members())

    def _publish_rooms(self) -> None:
        self.sink.set_room_list(self.rooms.known, self.rooms.active)

    @staticmethod
    def _from_history(entry: HistoryEntry, room: str) -> ChatMessage:
        return ChatMessage(
            kind=_HISTORY_KINDS.get(entry.type or "", "chat"),
            sender=entry.sender,
            text=entry.text,
            ts=entry.ts,
            room=entry.room or room,
        )
