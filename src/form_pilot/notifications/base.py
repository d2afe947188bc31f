"""Notification channels for operator-facing events."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from rich.console import Console

from ..models import NotificationEvent, NotificationLevel

LOGGER = logging.getLogger(__name__)


class Notifier(ABC):
    """Interface for sending notifications about session events."""

    @abstractmethod
    def notify(self, event: NotificationEvent) -> None:
        """Send a notification event."""


class ConsoleNotifier(Notifier):
    """Simple notifier that prints to the console using Rich."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console(stderr=True)

    def notify(self, event: NotificationEvent) -> None:
        style = {
            "info": "cyan",
            "warning": "yellow",
            "error": "red",
            "success": "green",
        }.get(event.level.value, "white")
        self._console.print(f"[{event.level.value.upper()}] {event.message}", style=style, markup=False)
        if event.data:
            self._console.print(event.data, style="dim")


class LoggingNotifier(Notifier):
    """Write events to the application log."""

    _LEVELS = {
        NotificationLevel.INFO: logging.INFO,
        NotificationLevel.SUCCESS: logging.INFO,
        NotificationLevel.WARNING: logging.WARNING,
        NotificationLevel.ERROR: logging.ERROR,
    }

    def notify(self, event: NotificationEvent) -> None:
        LOGGER.log(self._LEVELS.get(event.level, logging.INFO), "%s: %s %s", event.type, event.message, event.data)


class NullNotifier(Notifier):
    def notify(self, event: NotificationEvent) -> None:
        return
