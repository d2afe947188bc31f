"""Pause/resume coordination for sessions waiting on a human operator."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from ..browser.display import VNCConnectionInfo
from ..errors import SessionNotPaused
from ..models import NotificationEvent, NotificationLevel
from ..notifications.base import Notifier, NullNotifier
from ..sessions.models import Session


@dataclass
class InterventionRecord:
    """Why a session is waiting for a human and where they can act."""

    reason: str
    tool: str
    challenge_kind: Optional[str] = None
    connection_info: Optional[VNCConnectionInfo] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> dict[str, Any]:
        return {
            "reason": self.reason,
            "tool": self.tool,
            "challenge_kind": self.challenge_kind,
            "started_at": self.started_at.isoformat(),
            "connection": self.connection_info.as_dict() if self.connection_info else None,
        }


class HumanInterventionGate:
    """Track paused sessions and announce pauses to operators.

    Callers hold the session's request lock while pausing or resuming it.
    """

    def __init__(self, notifier: Optional[Notifier] = None) -> None:
        self._notifier = notifier or NullNotifier()
        self._lock = threading.Lock()
        self._connection_info: Optional[VNCConnectionInfo] = None

    def update_connection_info(self, info: Optional[VNCConnectionInfo]) -> None:
        with self._lock:
            self._connection_info = info

    def is_paused(self, session: Session) -> bool:
        return session.paused

    def pause(
        self,
        session: Session,
        *,
        reason: str,
        tool: str,
        challenge_kind: Optional[str] = None,
    ) -> InterventionRecord:
        with self._lock:
            info = self._connection_info
        record = InterventionRecord(
            reason=reason,
            tool=tool,
            challenge_kind=challenge_kind,
            connection_info=info,
        )
        session.paused = True
        session.intervention = record
        data: dict[str, Any] = {"session_id": session.id, **record.as_dict()}
        self._notifier.notify(
            NotificationEvent(
                type="user_action_required",
                message=f"Session {session.id} needs a human: {reason}",
                level=NotificationLevel.WARNING,
                data=data,
            )
        )
        return record

    def resume(self, session: Session) -> InterventionRecord:
        """Clear the pause. Raises :class:`SessionNotPaused` if there is none."""

        if not session.paused or session.intervention is None:
            raise SessionNotPaused(f"Session {session.id} is not waiting for a human")
        record = session.intervention
        self.clear(session)
        self._notifier.notify(
            NotificationEvent(
                type="user_action_completed",
                message=f"Operator resumed session {session.id}",
                level=NotificationLevel.SUCCESS,
                data={"session_id": session.id},
            )
        )
        return record

    def clear(self, session: Session) -> None:
        session.paused = False
        session.intervention = None
