"""Persist the display name and session id between runs of the client."""
import json
import os
from pathlib import Path

from loguru import logger

from pagichat.shared.models import Identity

SESSION_KEY = "sessionId"
NAME_KEY = "username"


def _atomic_write_json(path: Path, payload: dict[str, str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    content = json.dumps(payload, indent=2, sort_keys=True)

    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(content)
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(tmp_path, path)


class IdentityStore:
    """
    A tiny key-value file. Only two scalar keys live here: the session id the
    server handed out and the display name the user typed at login.
    """

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    def _read(self) -> dict[str, str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, ValueError, OSError) as e:
            logger.warning(f"identity_path={self.path} event=load_failed reason='{e}'")
            return {}

        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def load(self) -> Identity:
        data = self._read()
        return Identity(
            display_name=data.get(NAME_KEY, ""),
            session_id=data.get(SESSION_KEY) or None,
        )

    def _set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        _atomic_write_json(self.path, data)

    def save_session_id(self, session_id: str) -> None:
        self._set(SESSION_KEY, session_id)

    def save_display_name(self, name: str) -> None:
        self._set(NAME_KEY, name)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
