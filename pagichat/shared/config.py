"""
MODULE OVERVIEW:
Application-wide configuration using Pydantic Settings.

WHAT IS HAPPENING HERE:
Every timing the chat client depends on (reconnect delay, stats poll interval,
join confirmation timeout) is declared once here instead of being hardcoded
deep inside the connection loop. Values can be overridden with `PAGICHAT_*`
environment variables or a `.env` file.
"""
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    SERVER_URL: str = "http://127.0.0.1:5000"
    WS_PATH: str = "/ws/chat"
    STATS_PATH: str = "/api/stats"

    LOG_LEVEL: str = "INFO"
    LOG_FILE: Path = Path.home() / ".pagichat" / "client.log"

    # Local identity (display name + session id)
    IDENTITY_PATH: Path = Path.home() / ".pagichat" / "identity.json"

    # Reconnect: fixed delay, no backoff. None means retry forever.
    RECONNECT_DELAY_MS: int = 2000
    MAX_RECONNECT_ATTEMPTS: int | None = None

    # Stats polling
    STATS_POLL_INTERVAL_MS: int = 10000
    STATS_TIMEOUT_S: float = 5.0

    # Room switching. 0 disables the join confirmation timeout.
    # DEFAULT_ROOM is active until the first `joined`; None means no room.
    DEFAULT_ROOM: str | None = "general"
    JOIN_TIMEOUT_MS: int = 10000
    REJOIN_ON_RESUME: bool = False

    class Config:
        env_file = ".env"
        env_prefix = "PAGICHAT_"
        env_file_encoding = 'utf-8'
        extra = 'ignore'

    @property
    def ws_url(self) -> str:
        base = self.SERVER_URL.rstrip('/')
        base = base.replace('https://', 'wss://').replace('http://', 'ws://')
        return f"{base}{self.WS_PATH}"

    @property
    def stats_url(self) -> str:
        return f"{self.SERVER_URL.rstrip('/')}{self.STATS_PATH}"


settings = Settings()
