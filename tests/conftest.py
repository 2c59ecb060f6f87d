import asyncio
import contextlib
import json

import httpx
import pytest

from pagichat.client.chat_client import ChatClient
from pagichat.client.identity_store import IdentityStore
from pagichat.shared.config import Settings
from pagichat.shared.models import ConnectionState


class RecordingSink:
    def __init__(self):
        self.messages = []
        self.status_history: list[ConnectionState] = []
        self.rooms: list[str] = []
        self.active_room = None
        self.presence = []
        self.chat_visible = False
        self.display_name = ""
        self.stats = None
        self.clears = 0

    def show_chat_view(self):
        self.chat_visible = True

    def set_display_name(self, name):
        self.display_name = name

    def append_message(self, message):
        self.messages.append(message)

    def clear_messages(self):
        self.clears += 1
        self.messages.clear()

    def set_room_list(self, rooms, active):
        self.rooms = list(rooms)
        self.active_room = active

    def set_active_room(self, room):
        self.active_room = room

    def set_presence(self, users):
        self.presence = [u.name for u in users]

    def set_status(self, state):
        self.status_history.append(state)

    def set_stats(self, stats):
        self.stats = stats


class Timer:
    def __init__(self, ms, fn):
        self.ms = ms
        self.fn = fn
        self.cancelled = False
        self.fired = False


class ManualScheduler:
    def __init__(self):
        self.timers: list[Timer] = []

    def after(self, ms, fn):
        timer = Timer(ms, fn)
        self.timers.append(timer)
        return timer

    def cancel(self, handle):
        handle.cancelled = True

    @property
    def pending(self) -> list[Timer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def fire_all(self):
        for timer in self.pending:
            timer.fired = True
            timer.fn()


class FakeTransport:
    def __init__(self):
        self.sent = []

    def send(self, text):
        self.sent.append(json.loads(text))


class FakeWebSocket:
    def __init__(self, frames):
        self.frames = list(frames)
        self.sent = []

    async def send(self, text):
        self.sent.append(json.loads(text))

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for frame in self.frames:
            await asyncio.sleep(0)
            yield frame if isinstance(frame, str) else json.dumps(frame)
        await asyncio.sleep(0)


class ScriptedConnector:
    """Each connect pops the next script: a list of frames, or an exception raised while opening."""

    def __init__(self, *scripts):
        self.scripts = list(scripts)
        self.urls: list[str] = []
        self.sockets: list[FakeWebSocket] = []

    def __call__(self, url):
        self.urls.append(url)
        script = self.scripts.pop(0) if self.scripts else ConnectionRefusedError("server down")
        return self._open(script)

    @contextlib.asynccontextmanager
    async def _open(self, script):
        if isinstance(script, BaseException):
            raise script
        ws = FakeWebSocket(script)
        self.sockets.append(ws)
        yield ws


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def store(tmp_path):
    return IdentityStore(tmp_path / "identity.json")


@pytest.fixture
def make_client(tmp_path, sink, scheduler, store):
    def factory(connector=None, **overrides):
        settings = Settings(
            SERVER_URL="http://chat.test",
            IDENTITY_PATH=tmp_path / "identity.json",
            **overrides,
        )
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"users_online": 1, "rooms_count": 1})
        ))
        return ChatClient(
            sink,
            store,
            scheduler,
            settings=settings,
            connector=connector or ScriptedConnector(),
            http_client=http_client,
        )
    return factory


@pytest.fixture
def scripted_connector():
    return ScriptedConnector


@pytest.fixture
def fake_transport():
    return FakeTransport()
