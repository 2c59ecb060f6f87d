"""
MODULE OVERVIEW:
The Rich terminal front end.

WHAT IS HAPPENING HERE:
`TerminalView` is a RenderSink: the dispatcher calls it, it only records what
to show. `Visualizer` redraws a Live layout four times a second from that
record and, in parallel, reads commands from stdin and turns them into
ChatClient actions. Every piece of user-supplied text goes through
`rich.markup.escape` before it reaches the layout.
"""
import asyncio
import sys
from collections import deque
from datetime import datetime

from rich.layout import Layout
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from pagichat.client.chat_client import ChatClient
from pagichat.shared.models import ChatMessage, ConnectionState, RoomUser, StatsSnapshot

STATUS_STYLE = {
    ConnectionState.CONNECTED: ("green", "OK"),
    ConnectionState.CONNECTING: ("yellow", "..."),
    ConnectionState.DISCONNECTED: ("red", "X"),
}

HELP_TEXT = "Type to chat. /join <room> switches room, /quit exits."


def format_time(ts: float | None) -> str:
    if not ts:
        return ""
    return datetime.fromtimestamp(ts).strftime("%H:%M:%S")


class TerminalView:
    def __init__(self, max_messages: int = 200):
        self.messages: deque[ChatMessage] = deque(maxlen=max_messages)
        self.status = ConnectionState.DISCONNECTED
        self.display_name = ""
        self.chat_visible = False
        self.rooms: list[str] = []
        self.active_room: str | None = None
        self.users: list[RoomUser] = []
        self.stats: StatsSnapshot | None = None

    # RenderSink
    def show_chat_view(self) -> None:
        self.chat_visible = True

    def set_display_name(self, name: str) -> None:
        self.display_name = name

    def append_message(self, message: ChatMessage) -> None:
        self.messages.append(message)

    def clear_messages(self) -> None:
        self.messages.clear()

    def set_room_list(self, rooms: list[str], active: str | None) -> None:
        self.rooms = list(rooms)
        self.active_room = active

    def set_active_room(self, room: str) -> None:
        self.active_room = room

    def set_presence(self, users: list[RoomUser]) -> None:
        self.users = list(users)

    def set_status(self, state: ConnectionState) -> None:
        self.status = state

    def set_stats(self, stats: StatsSnapshot) -> None:
        self.stats = stats

    # Rendering
    def format_message(self, msg: ChatMessage) -> str:
        text = escape(msg.text)
        if msg.kind == "system":
            return f"[dim italic]{text}[/]"

        author = escape(msg.sender or "")
        color = "bold green" if msg.sender and msg.sender == self.display_name else "cyan"
        stamp = format_time(msg.ts)
        prefix = f"[dim]{stamp}[/] " if stamp else ""
        if msg.kind == "action":
            return f"{prefix}[{color}]* {author}[/] {text}"
        return f"{prefix}[{color}]{author}[/]: {text}"

    def generate_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="main")
        )

        color, marker = STATUS_STYLE[self.status]
        who = escape(self.display_name) or "(not logged in)"
        layout["header"].update(Panel(f"[{color} bold]{marker} {self.status.value}[/] | {who}", style=color))

        if not self.chat_visible:
            prompt = "Connecting..." if self.display_name else "Type your display name and press Enter."
            layout["main"].update(Panel(prompt, title="Login"))
            return layout

        layout["main"].split_row(
            Layout(name="feed", ratio=3),
            Layout(name="side", ratio=1)
        )
        layout["side"].split_column(
            Layout(name="rooms"),
            Layout(name="users"),
            Layout(name="stats", size=5)
        )

        feed = "\n".join(self.format_message(m) for m in self.messages) or f"[dim]{HELP_TEXT}[/]"
        title = f"#{escape(self.active_room)}" if self.active_room else "no room"
        layout["feed"].update(Panel(feed, title=title))

        rooms = Table(show_header=False, expand=True, box=None)
        rooms.add_column("Room")
        for name in self.rooms:
            style = "bold magenta" if name == self.active_room else ""
            rooms.add_row(f"#{escape(name)}", style=style)
        layout["rooms"].update(Panel(rooms, title="Rooms"))

        users = "\n".join(escape(u.name) for u in self.users)
        layout["users"].update(Panel(users, title=f"Users ({len(self.users)})"))

        if self.stats is not None:
            stats_text = f"Online: {self.stats.users_online}\nRooms: {self.stats.rooms_count}"
        else:
            stats_text = "Online: -\nRooms: -"
        layout["stats"].update(Panel(stats_text, title="Server"))

        return layout


def handle_input(client: ChatClient, line: str) -> bool:
    """Apply one line of user input. Returns False when the user asked to quit."""
    line = line.strip()
    if not line:
        return True
    if line == "/quit":
        return False
    if not client.session.display_name:
        client.login(line)
    elif line == "/join" or line.startswith("/join "):
        client.switch_room(line[len("/join"):])
    else:
        client.send_chat(line)
    return True


class Visualizer:
    def __init__(self, client: ChatClient, view: TerminalView):
        self.client = client
        self.view = view

    async def _read_input(self) -> None:
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line or not handle_input(self.client, line):
                return

    async def run(self) -> None:
        self.client.start()
        input_task = asyncio.create_task(self._read_input())

        try:
            with Live(self.view.generate_layout(), refresh_per_second=4) as live:
                while not input_task.done():
                    live.update(self.view.generate_layout())
                    await asyncio.sleep(0.25)
        finally:
            input_task.cancel()
            await self.client.stop()
