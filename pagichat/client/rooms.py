"""
MODULE OVERVIEW:
Room bookkeeping for one chat session.

WHAT IS HAPPENING HERE:
Room switching is a two-phase handshake. The client asks with a `join`
envelope, but the room only becomes active when the server answers `joined`.
Until then the request sits in `pending`. The known-rooms set is a dict used as
an ordered set, so the sidebar lists rooms in the order we learned about them.
"""
import re

_UNSAFE_ROOM_CHARS = re.compile(r"[^\w-]", re.ASCII)


def normalize_room_name(raw: str) -> str:
    """Lowercase and strip a user-typed room name down to `[a-z0-9_-]`."""
    return _UNSAFE_ROOM_CHARS.sub("", raw.strip().lower())


class RoomState:
    def __init__(self, default_room: str | None = None):
        self.active: str | None = default_room
        self.pending: str | None = None
        self._known: dict[str, None] = {}

    @property
    def known(self) -> list[str]:
        return list(self._known)

    def is_active(self, room: str | None) -> bool:
        return self.active is not None and room == self.active

    def activate(self, room: str) -> None:
        self.active = room
        self._known[room] = None
        self.pending = None

    def add(self, room: str) -> None:
        self._known[room] = None

    def remove(self, room: str) -> None:
        self._known.pop(room, None)

    def replace(self, rooms: list[str]) -> None:
        self._known = dict.fromkeys(rooms)

    def request(self, room: str) -> None:
        self.pending = room

    def clear_pending(self) -> None:
        self.pending = None
