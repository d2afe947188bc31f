"""Conversation transcript storage."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import List

from ..errors import PersistenceUnavailable
from ..models import Turn

LOGGER = logging.getLogger(__name__)


class HistoryStore(ABC):
    """Interface for recording and reading session transcripts."""

    @abstractmethod
    def append(self, session_id: str, turn: Turn) -> None:
        """Persist *turn* after every turn previously appended for the session."""

    @abstractmethod
    def read(self, session_id: str) -> List[Turn]:
        """Return the session's turns in insertion order."""


class InMemoryHistoryStore(HistoryStore):
    """Process-local store, useful for testing and single-process deployments."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._turns: dict[str, List[Turn]] = defaultdict(list)

    def append(self, session_id: str, turn: Turn) -> None:
        with self._lock:
            self._turns[session_id].append(turn)

    def read(self, session_id: str) -> List[Turn]:
        with self._lock:
            return list(self._turns.get(session_id, []))


class NullHistoryStore(HistoryStore):
    """Store that keeps nothing."""

    def append(self, session_id: str, turn: Turn) -> None:
        return

    def read(self, session_id: str) -> List[Turn]:
        return []


class DegradingHistoryStore(HistoryStore):
    """Store wrapper that turns an unreachable backend into an empty history."""

    def __init__(self, inner: HistoryStore) -> None:
        self._inner = inner

    def append(self, session_id: str, turn: Turn) -> None:
        try:
            self._inner.append(session_id, turn)
        except PersistenceUnavailable as exc:
            LOGGER.warning("Dropping %s turn for session %s: %s", turn.role.value, session_id, exc)

    def read(self, session_id: str) -> List[Turn]:
        try:
            return self._inner.read(session_id)
        except PersistenceUnavailable as exc:
            LOGGER.warning("History for session %s unavailable: %s", session_id, exc)
            return []
