"""Single-slot, device-local cache of the currently open analysis."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Protocol

from tenderpilot.metrics.observability import get_logger
from tenderpilot.models import SessionCache


class SessionSlot(Protocol):
    """Protocol for the session cache slot."""

    def read(self) -> SessionCache | None:
        """Return the cached session, or ``None`` when the slot is empty or unreadable."""

    def write(self, session: SessionCache) -> None:
        """Overwrite the slot."""

    def clear(self) -> None:
        """Empty the slot."""


class FileSessionSlot:
    """JSON file backed slot.

    The durable store stays authoritative, so every failure here is logged and
    otherwise ignored: losing the slot only loses resume-after-restart.
    """

    _logger = get_logger("session")

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> SessionCache | None:
        if not self._path.exists():
            return None
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
            session = SessionCache.from_dict(payload)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            self._logger.warning("session.unreadable", path=str(self._path), detail=str(exc))
            return None
        if not session.results:
            return None
        return session

    def write(self, session: SessionCache) -> None:
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(session.to_dict()), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            self._logger.warning("session.write_failed", path=str(self._path), detail=str(exc))
            return
        self._logger.info("session.saved", file=session.file.name, pairs=len(session.results))

    def clear(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            self._logger.warning("session.clear_failed", path=str(self._path), detail=str(exc))
            return
        self._logger.info("session.cleared")


class MemorySessionSlot:
    """In-process slot for tests and ephemeral runs."""

    def __init__(self) -> None:
        self._session: SessionCache | None = None

    def read(self) -> SessionCache | None:
        return self._session

    def write(self, session: SessionCache) -> None:
        self._session = session

    def clear(self) -> None:
        self._session = None
