"""
MODULE OVERVIEW:
The strictly typed data structures used by the chat client, powered by Pydantic v2.

WHAT IS HAPPENING HERE:
Every envelope that crosses the WebSocket is described here. Inbound envelopes
are decoded into a single `InboundEnvelope` carrying the union of all fields the
server may send (each handler reads only what its `type` defines). Outbound
envelopes are small dedicated models so a typo in a field name fails loudly
instead of reaching the server.
"""
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Identity(BaseModel):
    """The session as the client knows it: who we are and how to resume."""
    display_name: str = ""
    session_id: str | None = None

    def query_params(self) -> dict[str, str]:
        params = {"name": self.display_name}
        if self.session_id:
            params["session"] = self.session_id
        return params


class RoomUser(BaseModel):
    name: str


# WHAT IS HAPPENING HERE:
# This is the unit the render layer receives. `kind` decides how it is drawn:
# chat and action lines carry an author, system notices do not.
class ChatMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["chat", "action", "system"] = "chat"
    sender: str | None = Field(default=None, alias="from")
    text: str = ""
    ts: float | None = None
    room: str | None = None


class HistoryEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str | None = None
    sender: str | None = Field(default=None, alias="from")
    text: str = ""
    ts: float | None = None
    room: str | None = None


def _room_names(value: Any) -> Any:
    # Rooms arrive either as bare names or as {"name": ...} objects.
    if value is None or not isinstance(value, list):
        return value
    return [item.get("name") if isinstance(item, dict) else item for item in value]


class InboundEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str
    session_id: str | None = None
    name: str | None = None
    rooms: list[str] | None = None
    room: str | None = None
    history: list[HistoryEntry] | None = None
    users: list[RoomUser] | None = None
    user: str | None = None
    message: str | None = None
    text: str | None = None
    sender: str | None = Field(default=None, alias="from")
    ts: int | float | None = None

    @field_validator("rooms", mode="before")
    @classmethod
    def _normalize_rooms(cls, value: Any) -> Any:
        return _room_names(value)


class JoinRequest(BaseModel):
    type: Literal["join"] = "join"
    room: str


class ChatSend(BaseModel):
    type: Literal["message"] = "message"
    room: str
    text: str


class Pong(BaseModel):
    type: Literal["pong"] = "pong"
    ts: int | float | None = None


OutboundEnvelope = JoinRequest | ChatSend | Pong


class StatsSnapshot(BaseModel):
    users_online: int = 0
    rooms_count: int = 0

    @field_validator("users_online", "rooms_count", mode="before")
    @classmethod
    def _missing_as_zero(cls, value: Any) -> Any:
        return value or 0
