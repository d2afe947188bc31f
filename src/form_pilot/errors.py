"""Exception hierarchy shared by the browser, tool and orchestration layers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from .models import ToolTraceEntry


class FormPilotError(RuntimeError):
    """Base class for every error raised by form-pilot."""

    error_type = "internal_error"


class BrowserError(FormPilotError):
    """Raised when a browser operation fails."""

    error_type = "browser_error"


class NavigationTimeout(BrowserError):
    error_type = "navigation_timeout"


class ElementNotFound(BrowserError):
    error_type = "element_not_found"

    def __init__(self, selector: str, detail: str = "") -> None:
        message = f"Element {selector!r} did not become available"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.selector = selector


class ClickFailed(BrowserError):
    error_type = "click_failed"

    def __init__(self, selector: str, detail: str = "") -> None:
        message = f"Failed to click element {selector!r}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.selector = selector


class FieldFillFailed(BrowserError):
    """Raised on the first field that could not be filled.

    ``applied`` lists the selectors filled before the failure. They are not
    rolled back.
    """

    def __init__(self, selector: str, applied: Sequence[str], cause: Exception) -> None:
        super().__init__(f"Failed to fill field {selector!r}: {cause}")
        self.selector = selector
        self.applied = list(applied)
        self.cause = cause

    @property
    def error_type(self) -> str:  # type: ignore[override]
        return getattr(self.cause, "error_type", "fill_failed")


class BrowserClosed(BrowserError):
    error_type = "browser_closed"


class BrowserLaunchError(FormPilotError):
    error_type = "browser_launch_failed"


class InvalidToolArguments(FormPilotError):
    error_type = "invalid_tool_arguments"


class UnknownTool(FormPilotError):
    error_type = "unknown_tool"


class ToolLoopExceeded(FormPilotError):
    """Raised when the model keeps requesting tools past the iteration ceiling."""

    error_type = "tool_loop_exceeded"

    def __init__(
        self,
        iterations: int,
        trace: Optional[Sequence["ToolTraceEntry"]] = None,
    ) -> None:
        super().__init__(f"Model requested tools for {iterations} consecutive turns")
        self.iterations = iterations
        self.trace = list(trace or [])


class ProviderError(FormPilotError):
    """LLM call failed or returned output that could not be interpreted."""

    error_type = "provider_error"


class PersistenceUnavailable(FormPilotError):
    error_type = "persistence_unavailable"


class SessionBusy(FormPilotError):
    error_type = "session_busy"


class SessionNotPaused(FormPilotError):
    error_type = "session_not_paused"
