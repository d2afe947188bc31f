"""File-backed transcript store writing one JSON line per turn."""

from __future__ import annotations

import hashlib
import re
import threading
from pathlib import Path
from typing import List

from pydantic import ValidationError

from ..errors import PersistenceUnavailable
from ..models import Turn
from .base import HistoryStore

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class JsonlHistoryStore(HistoryStore):
    """Keep each session's transcript in ``<directory>/<session>.jsonl``."""

    def __init__(self, directory: Path) -> None:
        self._directory = directory
        self._lock = threading.Lock()

    def append(self, session_id: str, turn: Turn) -> None:
        path = self.path_for(session_id)
        line = turn.model_dump_json() + "\n"
        with self._lock:
            try:
                self._directory.mkdir(parents=True, exist_ok=True)
                with path.open("a", encoding="utf-8") as handle:
                    handle.write(line)
            except OSError as exc:
                raise PersistenceUnavailable(f"Cannot write {path}: {exc}") from exc

    def read(self, session_id: str) -> List[Turn]:
        path = self.path_for(session_id)
        with self._lock:
            if not path.exists():
                return []
            try:
                lines = path.read_text(encoding="utf-8").splitlines()
            except OSError as exc:
                raise PersistenceUnavailable(f"Cannot read {path}: {exc}") from exc
        try:
            return [Turn.model_validate_json(line) for line in lines if line.strip()]
        except ValidationError as exc:
            raise PersistenceUnavailable(f"Corrupt history file {path}") from exc

    def path_for(self, session_id: str) -> Path:
        """Map a session id to a file that cannot escape the store directory."""

        safe = _UNSAFE_CHARS.sub("_", session_id).strip(".") or "session"
        if safe != session_id:
            digest = hashlib.sha1(session_id.encode("utf-8")).hexdigest()[:8]
            safe = f"{safe[:64]}-{digest}"
        base_dir = self._directory.resolve()
        resolved = (base_dir / f"{safe}.jsonl").resolve()
        try:
            resolved.relative_to(base_dir)
        except ValueError as exc:  # pragma: no cover - sanitised names never escape
            raise PersistenceUnavailable("Session id escapes history directory") from exc
        return resolved
