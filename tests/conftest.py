from __future__ import annotations

from typing import Any, Callable, Iterable, Optional, Sequence

import pytest

from form_pilot.browser.base import BrowserSession, PageLocation
from form_pilot.browser.detection import ChallengeDetector
from form_pilot.config import BrowserConfig
from form_pilot.errors import ClickFailed, ElementNotFound, NavigationTimeout
from form_pilot.models import NotificationEvent
from form_pilot.notifications.base import Notifier

FAKE_PNG = b"\x89PNG\r\n\x1a\nfake"


class FakeBrowserSession(BrowserSession):
    """In-memory page: ``elements`` maps selectors to their current values."""

    def __init__(
        self,
        *,
        elements: Optional[dict[str, Any]] = None,
        text: str = "",
        challenges: Iterable[str] = (),
        title: str = "Example Domain",
        config: Optional[BrowserConfig] = None,
        detector: Optional[ChallengeDetector] = None,
        check_before_click: bool = False,
        fail_launch: bool = False,
    ) -> None:
        super().__init__(
            config or BrowserConfig(headless=True),
            detector,
            check_before_click=check_before_click,
        )
        self.elements: dict[str, Any] = dict(elements or {})
        self.text = text
        self.challenges = set(challenges)
        self.title = title
        self.url = "about:blank"
        self.fail_launch = fail_launch
        self.broken_clicks: set[str] = set()
        self.slow_urls: set[str] = set()
        self.events: list[tuple[Any, ...]] = []
        self.pauses: list[float] = []
        self.launches = 0
        self.shutdowns = 0

    def _launch(self) -> None:
        if self.fail_launch:
            raise RuntimeError("no display available")
        self.launches += 1

    def _shutdown(self) -> None:
        self.shutdowns += 1

    def _goto(self, url: str, timeout: float) -> PageLocation:
        if url in self.slow_urls:
            raise NavigationTimeout(f"Timed out loading {url}")
        self.url = url
        self.events.append(("goto", url))
        return PageLocation(url=url, title=self.title)

    def _wait_for(self, selector: str, timeout: float) -> None:
        if selector not in self.elements:
            raise ElementNotFound(selector, f"waited {timeout}s")

    def _fill(self, selector: str, value: str) -> None:
        self.elements[selector] = value
        self.events.append(("fill", selector, value))

    def _select(self, selector: str, value: str) -> None:
        self.elements[selector] = value
        self.events.append(("select", selector, value))

    def _set_checked(self, selector: str, checked: bool) -> None:
        self.elements[selector] = checked
        self.events.append(("check", selector, checked))

    def _click(self, selector: str) -> None:
        if selector in self.broken_clicks:
            raise ClickFailed(selector, "element is covered")
        self.events.append(("click", selector))

    def _pause(self, seconds: float) -> None:
        self.pauses.append(seconds)

    def _first_visible(self, selectors: Sequence[str]) -> Optional[str]:
        self.events.append(("scan",))
        return next((selector for selector in selectors if selector in self.challenges), None)

    def _body_text(self) -> str:
        return self.text

    def _form_fields(self) -> list[dict[str, Any]]:
        return [{"selector": selector, "tag": "input"} for selector in self.elements]

    def _page_title(self) -> str:
        return self.title

    def _page_url(self) -> str:
        return self.url

    def _capture_png(self) -> bytes:
        return FAKE_PNG

    def actions(self, kind: str) -> list[tuple[Any, ...]]:
        return [event for event in self.events if event[0] == kind]


class CollectingNotifier(Notifier):
    def __init__(self) -> None:
        self.events: list[NotificationEvent] = []

    def notify(self, event: NotificationEvent) -> None:
        self.events.append(event)


@pytest.fixture
def make_browser() -> Callable[..., FakeBrowserSession]:
    def make(start: bool = True, **kwargs: Any) -> FakeBrowserSession:
        session = FakeBrowserSession(**kwargs)
        if start:
            session.start()
        return session

    return make


@pytest.fixture
def browser(make_browser: Callable[..., FakeBrowserSession]) -> FakeBrowserSession:
    return make_browser(elements={"#name": "", "#email": ""})


@pytest.fixture
def notifier() -> CollectingNotifier:
    return CollectingNotifier()


@pytest.fixture
def browser_factory() -> Callable[..., Callable[[str], FakeBrowserSession]]:
    """Build a registry browser factory that remembers every browser it made."""

    def make(**kwargs: Any) -> Callable[[str], FakeBrowserSession]:
        created: list[FakeBrowserSession] = []

        def factory(session_id: str) -> FakeBrowserSession:
            session = FakeBrowserSession(**kwargs)
            created.append(session)
            return session

        factory.created = created  # type: ignore[attr-defined]
        return factory

    return make
