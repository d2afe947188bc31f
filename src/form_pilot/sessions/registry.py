"""Registry owning every live agent session."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from ..browser.base import BrowserSession
from ..errors import BrowserLaunchError, FormPilotError, SessionBusy
from .models import Session

LOGGER = logging.getLogger(__name__)

BrowserFactory = Callable[[str], BrowserSession]


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class SessionRegistry:
    """Map session ids to exactly one live :class:`Session` each.

    Creation and teardown for an id run under that id's own lock, so
    launching a browser for one id never blocks requests for another.
    """

    def __init__(self, browser_factory: BrowserFactory, *, lock_timeout: Optional[float] = 60.0) -> None:
        self._browser_factory = browser_factory
        self._lock_timeout = lock_timeout
        self._guard = threading.Lock()
        self._sessions: dict[str, Session] = {}
        self._key_locks: dict[str, _KeyLock] = {}

    def get_or_create(self, session_id: str) -> Session:
        with self._locked(session_id):
            existing = self.get(session_id)
            if existing is not None:
                return existing
            session = Session(id=session_id, browser=self._start_browser(session_id))
            with self._guard:
                self._sessions[session_id] = session
            LOGGER.info("Created session %s", session_id)
            return session

    def get(self, session_id: str) -> Optional[Session]:
        with self._guard:
            session = self._sessions.get(session_id)
        if session is None or session.closed:
            return None
        return session

    def close(self, session_id: str) -> bool:
        """Release the session's browser and forget it. Returns False if absent."""

        with self._locked(session_id):
            with self._guard:
                session = self._sessions.pop(session_id, None)
            if session is None:
                return False
            session.close()
        LOGGER.info("Closed session %s", session_id)
        return True

    def close_all(self) -> None:
        for session_id in self.ids():
            try:
                self.close(session_id)
            except FormPilotError as exc:
                LOGGER.warning("Failed to close session %s: %s", session_id, exc)

    def ids(self) -> list[str]:
        with self._guard:
            return list(self._sessions)

    def __len__(self) -> int:
        with self._guard:
            return len(self._sessions)

    # Internal helpers -----------------------------------------------------------

    def _start_browser(self, session_id: str) -> BrowserSession:
        browser = self._browser_factory(session_id)
        try:
            browser.start()
        except BrowserLaunchError:
            browser.close()
            raise
        except Exception as exc:
            browser.close()
            raise BrowserLaunchError(f"Failed to start browser for session {session_id}: {exc}") from exc
        return browser

    @contextmanager
    def _locked(self, session_id: str) -> Iterator[None]:
        # Entries live only while some thread holds or waits on them.
        with self._guard:
            entry = self._key_locks.get(session_id)
            if entry is None:
                entry = self._key_locks[session_id] = _KeyLock()
            entry.users += 1
        timeout = -1 if self._lock_timeout is None else self._lock_timeout
        try:
            if not entry.lock.acquire(timeout=timeout):
                raise SessionBusy(f"Session {session_id} is busy")
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._key_locks[session_id]
