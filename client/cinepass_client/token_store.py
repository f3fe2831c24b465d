"""Client-side storage of the current session's tokens.

Nothing read from a store is trusted for authorization; the server
re-checks every token it receives.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


@dataclass
class StoredSession:
    access_token: str | None = None
    refresh_token: str | None = None
    user: dict[str, Any] | None = None


class TokenStore(Protocol):
    def load(self) -> StoredSession | None: ...

    def save(self, session: StoredSession) -> None: ...

    def clear(self) -> None: ...


class MemoryTokenStore:
    """Keeps the session for the lifetime of the process only."""

    def __init__(self) -> None:
        self._session: StoredSession | None = None

    def load(self) -> StoredSession | None:
        return self._session

    def save(self, session: StoredSession) -> None:
        self._session = StoredSession(**asdict(session))

    def clear(self) -> None:
        self._session = None


class FileTokenStore:
    """Keeps the session in a JSON file readable only by the current user."""

    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path)

    def load(self) -> StoredSession | None:
        """Read the session file. A missing or unreadable file means no session."""
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed session file {self.path}")
            return None
        return StoredSession(
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            user=data.get("user"),
        )

    def save(self, session: StoredSession) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(asdict(session), f)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
