"""Agent session state."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from ..browser.base import BrowserSession
from ..models import Turn

if TYPE_CHECKING:  # pragma: no cover
    from ..orchestrator.gate import InterventionRecord


@dataclass(eq=False)
class Session:
    """Conversation plus the browser it drives, keyed by an opaque id."""

    id: str
    browser: BrowserSession
    conversation: list[Turn] = field(default_factory=list)
    paused: bool = False
    intervention: Optional["InterventionRecord"] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    request_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def closed(self) -> bool:
        return self.browser.closed

    def close(self) -> None:
        self.browser.close()
