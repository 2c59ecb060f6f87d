import pytest

from pagichat.client.dispatcher import MessageDispatcher
from pagichat.client.presence import PresenceTracker
from pagichat.client.rooms import RoomState
from pagichat.shared.models import Identity, InboundEnvelope


@pytest.fixture
def outbox():
    return []


@pytest.fixture
def dispatcher(sink, store, outbox):
    def send(envelope):
        outbox.append(envelope.model_dump())
        return True

    return MessageDispatcher(Identity(), store, RoomState(), PresenceTracker(), sink, send=send)


def feed(dispatcher, **fields):
    dispatcher.dispatch(InboundEnvelope.model_validate(fields))


def test_connected_assigns_and_persists_session(dispatcher, sink, store) -> None:
    feed(dispatcher, type="connected", session_id="abc", name="alice", rooms=["general"])

    assert dispatcher.session.session_id == "abc"
    assert dispatcher.session.display_name == "alice"
    assert store.load().session_id == "abc"
    assert sink.chat_visible
    assert sink.display_name == "alice"
    assert dispatcher.rooms.known == ["general"]
    assert sink.rooms == ["general"]


def test_resumed_restores_session_without_resetting_room(dispatcher, sink, outbox) -> None:
    feed(dispatcher, type="joined", room="dev", history=[{"from": "bob", "text": "hi"}], users=[{"name": "bob"}])
    clears = sink.clears

    feed(dispatcher, type="resumed", session_id="abc", name="alice")

    assert dispatcher.session.session_id == "abc"
    assert dispatcher.rooms.active == "dev"
    assert sink.clears == clears
    assert len(sink.messages) == 1
    assert sink.chat_visible
    assert outbox == []


def test_resumed_rejoins_active_room_when_enabled(dispatcher, outbox) -> None:
    dispatcher.rejoin_on_resume = True
    feed(dispatcher, type="joined", room="dev")
    feed(dispatcher, type="resumed", session_id="abc", name="alice")

    assert outbox == [{"type": "join", "room": "dev"}]


def test_joined_resets_buffer_and_replays_history_in_order(dispatcher, sink) -> None:
    feed(dispatcher, type="joined", room="general")
    feed(dispatcher, type="message", room="general", **{"from": "carol"}, text="old")

    feed(
        dispatcher,
        type="joined",
        room="dev",
        history=[
            {"from": "bob", "text": "hi", "ts": 100},
            {"from": "bob", "text": "waves", "type": "action"},
            {"text": "topic changed", "type": "system"},
        ],
        users=[{"name": "bob"}, {"name": "alice"}],
    )

    assert [m.text for m in sink.messages] == ["hi", "waves", "topic changed"]
    assert [m.kind for m in sink.messages] == ["chat", "action", "system"]
    assert sink.messages[0].sender == "bob"
    assert sink.messages[0].ts == 100
    assert dispatcher.rooms.active == "dev"
    assert sink.active_room == "dev"
    assert dispatcher.rooms.known == ["general", "dev"]
    assert sink.presence == ["bob", "alice"]
    assert dispatcher.presence.current_count() == 2


def test_joined_without_history_leaves_empty_buffer(dispatcher, sink) -> None:
    feed(dispatcher, type="joined", room="general")
    feed(dispatcher, type="system", text="welcome")
    feed(dispatcher, type="joined", room="dev")

    assert sink.messages == []
    assert sink.presence == []


def test_left_removes_room_but_keeps_active(dispatcher, sink) -> None:
    feed(dispatcher, type="room_list", rooms=["general", "dev"])
    feed(dispatcher, type="joined", room="dev")
    feed(dispatcher, type="left", room="general")

    assert dispatcher.rooms.known == ["dev"]
    assert sink.rooms == ["dev"]
    assert dispatcher.rooms.active == "dev"


@pytest.mark.parametrize("kind", ["message", "action"])
def test_chat_for_inactive_room_is_dropped(dispatcher, sink, kind) -> None:
    feed(dispatcher, type="joined", room="dev")
    feed(dispatcher, type=kind, room="general", **{"from": "bob"}, text="elsewhere")

    assert sink.messages == []
    assert dispatcher.rooms.active == "dev"


def test_chat_without_default_room_is_dropped_until_joined(dispatcher, sink) -> None:
    feed(dispatcher, type="message", room="general", text="hi")

    assert sink.messages == []


def test_chat_for_active_room_is_rendered(dispatcher, sink) -> None:
    feed(dispatcher, type="joined", room="dev")
    feed(dispatcher, type="message", room="dev", **{"from": "bob"}, text="hi", ts=5)
    feed(dispatcher, type="action", room="dev", **{"from": "bob"}, text="waves")

    assert [(m.kind, m.sender, m.text) for m in sink.messages] == [
        ("chat", "bob", "hi"),
        ("action", "bob", "waves"),
    ]


def test_system_notice_has_no_author(dispatcher, sink) -> None:
    feed(dispatcher, type="system", text="server restarting")

    assert sink.messages[0].kind == "system"
    assert sink.messages[0].sender is None
    assert sink.messages[0].text == "server restarting"


def test_user_joined_and_left_in_active_room(dispatcher, sink) -> None:
    feed(dispatcher, type="joined", room="dev", users=[{"name": "alice"}])
    feed(dispatcher, type="user_joined", room="dev", user="bob", users=[{"name": "alice"}, {"name": "bob"}])
    feed(dispatcher, type="user_left", room="dev", user="alice", users=[{"name": "bob"}])

    assert [m.text for m in sink.messages] == ["bob joined", "alice left"]
    assert all(m.kind == "system" for m in sink.messages)
    assert sink.presence == ["bob"]


def test_membership_changes_in_other_rooms_are_ignored(dispatcher, sink) -> None:
    feed(dispatcher, type="joined", room="dev", users=[{"name": "alice"}])
    feed(dispatcher, type="user_joined", room="general", user="bob", users=[{"name": "bob"}])
    feed(dispatcher, type="user_list", room="general", users=[{"name": "zed"}])

    assert sink.messages == []
    assert sink.presence == ["alice"]


def test_user_list_replaces_presence_wholesale(dispatcher) -> None:
    feed(dispatcher, type="joined", room="dev", users=[{"name": "alice"}, {"name": "bob"}])
    feed(dispatcher, type="user_list", room="dev", users=[{"name": "carol"}])

    assert [u.name for u in dispatcher.presence.current_members()] == ["carol"]


def test_room_list_replaces_known_rooms_idempotently(dispatcher, sink) -> None:
    feed(dispatcher, type="connected", session_id="abc", name="alice", rooms=["general", "old"])
    feed(dispatcher, type="room_list", rooms=["general", "dev"])
    first = dispatcher.rooms.known
    feed(dispatcher, type="room_list", rooms=["general", "dev"])

    assert first == ["general", "dev"]
    assert dispatcher.rooms.known == first
    assert sink.rooms == first


def test_room_list_accepts_room_objects(dispatcher) -> None:
    feed(dispatcher, type="room_list", rooms=[{"name": "general"}, {"name": "dev"}])

    assert dispatcher.rooms.known == ["general", "dev"]


def test_error_renders_notice_without_mutation(dispatcher, sink) -> None:
    feed(dispatcher, type="joined", room="dev", users=[{"name": "alice"}])
    feed(dispatcher, type="error", message="Room is full")

    assert sink.messages[-1].kind == "system"
    assert sink.messages[-1].text == "Error: Room is full"
    assert dispatcher.rooms.active == "dev"
    assert sink.presence == ["alice"]


def test_ping_replies_with_matching_pong(dispatcher, outbox) -> None:
    feed(dispatcher, type="ping", ts=555)

    assert outbox == [{"type": "pong", "ts": 555}]


def test_unknown_type_is_ignored(dispatcher, sink, outbox) -> None:
    feed(dispatcher, type="typing", room="dev", user="bob")

    assert sink.messages == []
    assert outbox == []


def test_error_without_message_renders_bare_prefix(dispatcher, sink) -> None:
    feed(dispatcher, type="error")

    assert sink.messages[-1].text == "Error: "


def test_connected_survives_unwritable_identity_file(dispatcher, sink, store, monkeypatch) -> None:
    def read_only(session_id):
        raise PermissionError("read-only file system")

    monkeypatch.setattr(store, "save_session_id", read_only)
    feed(dispatcher, type="connected", session_id="abc", name="alice", rooms=["general"])

    assert dispatcher.session.session_id == "abc"
    assert sink.chat_visible
    assert dispatcher.rooms.known == ["general"]
