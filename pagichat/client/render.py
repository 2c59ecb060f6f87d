"""
MODULE OVERVIEW:
The render-sink contract between the chat core and whatever draws it.

WHAT IS HAPPENING HERE:
The dispatcher never touches a terminal or a widget. It only calls the methods
below, which keeps every message handler testable with a recording fake and
lets the Rich dashboard in `visualizer.py` be swapped for any other front end.
"""
from typing import Protocol

from pagichat.shared.models import ChatMessage, ConnectionState, RoomUser, StatsSnapshot


class RenderSink(Protocol):
    def show_chat_view(self) -> None: ...

    def set_display_name(self, name: str) -> None: ...

    def append_message(self, message: ChatMessage) -> None: ...

    def clear_messages(self) -> None: ...

    def set_room_list(self, rooms: list[str], active: str | None) -> None: ...

    def set_active_room(self, room: str) -> None: ...

    def set_presence(self, users: list[RoomUser]) -> None: ...

    def set_status(self, state: ConnectionState) -> None: ...

    def set_stats(self, stats: StatsSnapshot) -> None: ...
