"""Browser control surface shared by every backend."""

from __future__ import annotations

import base64
import logging
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence, TypeVar

from ..config import BrowserConfig
from ..errors import BrowserClosed, BrowserError, FieldFillFailed
from ..models import CaptchaDetection, FieldKind, FormField
from .detection import ChallengeDetector

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

CHECKED_VALUES = frozenset({"true", "1", "yes", "on", "checked"})
PAGE_INFO_TYPES = ("forms", "text", "title", "url")

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def normalize_url(url: str) -> str:
    """Add the ``https://`` scheme when *url* has none."""

    candidate = url.strip()
    if _SCHEME_RE.match(candidate) or candidate.startswith("about:"):
        return candidate
    return "https://" + candidate.lstrip("/")


@dataclass
class PageLocation:
    """Where the browser ended up after a navigation."""

    url: str
    title: str


@dataclass
class FillOutcome:
    """Result of a fill request that did not fail."""

    applied: list[str] = field(default_factory=list)
    detection: Optional[CaptchaDetection] = None

    @property
    def paused_for_human(self) -> bool:
        return bool(self.detection and self.detection.detected)


@dataclass
class ClickOutcome:
    selector: str
    detection: Optional[CaptchaDetection] = None

    @property
    def paused_for_human(self) -> bool:
        return bool(self.detection and self.detection.detected)


class BrowserSession(ABC):
    """One controllable browser context owned by a single agent session.

    Public operations hold the semantics (challenge detection before filling,
    bounded waits, settle delays, output bounds). Backends implement the
    underscore-prefixed primitives and may override :meth:`_run` to execute
    them on a thread of their choosing.
    """

    def __init__(
        self,
        config: Optional[BrowserConfig] = None,
        detector: Optional[ChallengeDetector] = None,
        *,
        check_before_click: bool = False,
    ) -> None:
        self._config = config or BrowserConfig()
        self._detector = detector or ChallengeDetector()
        self._check_before_click = check_before_click
        self._state_lock = threading.Lock()
        self._started = False
        self._closed = False

    # Lifecycle ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Launch the browser context."""

        with self._state_lock:
            if self._closed:
                raise BrowserClosed("Browser session is closed")
            if self._started:
                return
        self._run(self._launch)
        with self._state_lock:
            self._started = True

    def close(self) -> None:
        """Release the browser context. Calling it again is a no-op."""

        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            started = self._started
        try:
            if started:
                self._run(self._shutdown)
        finally:
            self._release()

    # Operations -----------------------------------------------------------------

    def navigate(self, url: str) -> PageLocation:
        self._ensure_open()
        target = normalize_url(url)
        LOGGER.info("Navigating to %s", target)
        return self._run(self._goto, target, self._config.navigation_timeout)

    def fill_fields(self, fields: Sequence[FormField]) -> FillOutcome:
        """Fill *fields* in order unless a verification challenge is showing.

        Raises :class:`FieldFillFailed` on the first field that cannot be
        filled; fields applied before it stay applied.
        """

        self._ensure_open()
        return self._run(self._fill_sequence, list(fields))

    def click(self, selector: str) -> ClickOutcome:
        self._ensure_open()
        return self._run(self._click_sequence, selector)

    def extract_page_info(self, info_type: str) -> Any:
        self._ensure_open()
        if info_type not in PAGE_INFO_TYPES:
            raise ValueError(f"Unsupported page info type: {info_type}")
        return self._run(self._extract, info_type)

    def detect_verification_challenge(self) -> CaptchaDetection:
        self._ensure_open()
        return self._run(self._scan_for_challenge)

    def screenshot(self) -> str:
        """Return a base64-encoded PNG of the current viewport."""

        self._ensure_open()
        data = self._run(self._capture_png)
        return base64.b64encode(data).decode("ascii")

    # Composite steps (run as one unit through ``_run``) -------------------------

    def _fill_sequence(self, fields: list[FormField]) -> FillOutcome:
        detection = self._scan_for_challenge()
        if detection.detected:
            LOGGER.warning("Skipping form fill: %s", detection.message)
            return FillOutcome(detection=detection)
        applied: list[str] = []
        for item in fields:
            LOGGER.debug("Filling field %s (%s)", item.selector, item.kind.value)
            try:
                self._wait_for(item.selector, self._config.element_timeout)
                self._apply(item)
            except BrowserError as exc:
                raise FieldFillFailed(item.selector, applied, exc) from exc
            applied.append(item.selector)
            self._pause(self._config.field_settle_delay)
        return FillOutcome(applied=applied)

    def _apply(self, item: FormField) -> None:
        if item.kind is FieldKind.SELECT:
            self._select(item.selector, item.value)
        elif item.kind is FieldKind.CHECKBOX:
            self._set_checked(item.selector, item.value.strip().lower() in CHECKED_VALUES)
        elif item.kind is FieldKind.RADIO:
            self._click(item.selector)
        else:
            self._fill(item.selector, item.value)

    def _click_sequence(self, selector: str) -> ClickOutcome:
        if self._check_before_click:
            detection = self._scan_for_challenge()
            if detection.detected:
                LOGGER.warning("Skipping click on %s: %s", selector, detection.message)
                return ClickOutcome(selector=selector, detection=detection)
        self._wait_for(selector, self._config.element_timeout)
        self._click(selector)
        self._pause(self._config.click_settle_delay)
        return ClickOutcome(selector=selector)

    def _extract(self, info_type: str) -> Any:
        if info_type == "forms":
            return self._form_fields()[: self._config.max_form_fields]
        if info_type == "text":
            return (self._body_text() or "")[: self._config.max_text_chars]
        if info_type == "title":
            return self._page_title()[: self._config.max_text_chars]
        return self._page_url()

    def _scan_for_challenge(self) -> CaptchaDetection:
        try:
            return self._detector.scan(self._first_visible, self._body_text)
        except BrowserError as exc:
            LOGGER.warning("Challenge detection failed: %s", exc)
            return CaptchaDetection(detected=False, message=f"Error checking for CAPTCHA: {exc}")

    # Execution hooks ------------------------------------------------------------

    def _run(self, func: Callable[..., T], *args: Any) -> T:
        return func(*args)

    def _release(self) -> None:
        """Free resources that outlive the browser itself."""

    def _ensure_open(self) -> None:
        if self._closed:
            raise BrowserClosed("Browser session is closed")
        if not self._started:
            raise BrowserClosed("Browser session is not started")

    # Backend primitives ---------------------------------------------------------

    @abstractmethod
    def _launch(self) -> None:
        """Start the browser and open a page."""

    @abstractmethod
    def _shutdown(self) -> None:
        """Close the page, context and browser."""

    @abstractmethod
    def _goto(self, url: str, timeout: float) -> PageLocation:
        """Load *url* and wait for the network to settle."""

    @abstractmethod
    def _wait_for(self, selector: str, timeout: float) -> None:
        """Wait for *selector*; raise :class:`ElementNotFound` on expiry."""

    @abstractmethod
    def _fill(self, selector: str, value: str) -> None: ...

    @abstractmethod
    def _select(self, selector: str, value: str) -> None: ...

    @abstractmethod
    def _set_checked(self, selector: str, checked: bool) -> None: ...

    @abstractmethod
    def _click(self, selector: str) -> None:
        """Click *selector*; raise :class:`ClickFailed` when the click fails."""

    @abstractmethod
    def _pause(self, seconds: float) -> None: ...

    @abstractmethod
    def _first_visible(self, selectors: Sequence[str]) -> Optional[str]:
        """Return the first selector with a visible match, if any."""

    @abstractmethod
    def _body_text(self) -> str: ...

    @abstractmethod
    def _form_fields(self) -> list[dict[str, Any]]: ...

    @abstractmethod
    def _page_title(self) -> str: ...

    @abstractmethod
    def _page_url(self) -> str: ...

    @abstractmethod
    def _capture_png(self) -> bytes: ...
