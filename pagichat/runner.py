"""
CLI entrypoint for the pagichat terminal client.
"""
import asyncio

import typer
from loguru import logger

from pagichat.client.chat_client import ChatClient
from pagichat.client.identity_store import IdentityStore
from pagichat.client.scheduler import AsyncioScheduler
from pagichat.client.visualizer import TerminalView, Visualizer
from pagichat.shared.config import settings

app = typer.Typer(help="pagichat real-time chat client")


def configure_logging() -> None:
    # The live dashboard owns the terminal, so logs go to a file.
    logger.remove()
    settings.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    logger.add(settings.LOG_FILE, level=settings.LOG_LEVEL.upper(), rotation="1 MB")


async def _run_chat(name: str | None) -> None:
    view = TerminalView()
    client = ChatClient(view, IdentityStore(settings.IDENTITY_PATH), AsyncioScheduler())
    if name:
        # An explicit name wins over the stored one, but keeps the stored session.
        client.session.display_name = name.strip()
        client.store.save_display_name(client.session.display_name)
    await Visualizer(client, view).run()


@app.command()
def chat(
    name: str = typer.Option(None, help="Display name. Defaults to the one stored from the last login."),
    server: str = typer.Option(None, help="Server base URL, e.g. http://127.0.0.1:5000"),
):
    """Open the interactive chat dashboard."""
    if server:
        settings.SERVER_URL = server
    configure_logging()
    try:
        asyncio.run(_run_chat(name))
    except KeyboardInterrupt:
        pass


@app.command()
def stats(server: str = typer.Option(None, help="Server base URL")):
    """Query the server once for users online and room count."""
    import httpx
    from pagichat.shared.models import StatsSnapshot

    if server:
        settings.SERVER_URL = server
    try:
        resp = httpx.get(settings.stats_url, timeout=settings.STATS_TIMEOUT_S)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        typer.echo(f"Stats unavailable: {e}")
        raise typer.Exit(1)
    snapshot = StatsSnapshot.model_validate(resp.json())
    typer.echo(f"users_online={snapshot.users_online} rooms_count={snapshot.rooms_count}")


@app.command()
def forget():
    """Delete the stored display name and session id."""
    IdentityStore(settings.IDENTITY_PATH).clear()
    typer.echo(f"Removed {settings.IDENTITY_PATH}")


if __name__ == "__main__":
    app()
