from pagichat.shared.models import RoomUser


class PresenceTracker:
    """Member list of the active room. Every update replaces the whole list."""

    def __init__(self):
        self._members: list[RoomUser] = []

    def replace(self, users: list[RoomUser] | None) -> None:
        self._members = list(users or [])

    def current_count(self) -> int:
        return len(self._members)

    def current_members(self) -> list[RoomUser]:
        return list(self._members)
