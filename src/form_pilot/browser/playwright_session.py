"""Playwright-powered browser session implementation."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, Sequence, TypeVar

from playwright.sync_api import Error, sync_playwright
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from ..config import BrowserConfig
from ..errors import BrowserError, BrowserLaunchError, ClickFailed, ElementNotFound, NavigationTimeout
from .base import BrowserSession, PageLocation
from .detection import ChallengeDetector

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_FORM_FIELDS_SCRIPT = """
() => {
  const fields = [];
  document.querySelectorAll('form').forEach((form, formIndex) => {
    form.querySelectorAll('input, select, textarea').forEach((el) => {
      const tag = el.tagName.toLowerCase();
      const type = el.type || (tag === 'textarea' ? 'textarea' : 'text');
      let selector;
      if (el.id) {
        selector = '#' + CSS.escape(el.id);
      } else if (el.name) {
        selector = `${tag}[name="${el.name}"]`;
      } else {
        selector = `${tag}[type="${type}"]`;
      }
      fields.push({
        form_index: formIndex,
        tag: tag,
        type: type,
        name: el.name || '',
        id: el.id || '',
        placeholder: el.placeholder || '',
        required: Boolean(el.required),
        selector: selector,
      });
    });
  });
  return fields;
}
"""


class PlaywrightBrowserSession(BrowserSession):
    """Browser session backed by Playwright's sync API.

    The sync API is bound to the thread that started it, while requests for
    one agent session may arrive on any server thread. Every primitive is
    therefore executed on a single worker thread owned by this session.
    """

    def __init__(
        self,
        config: Optional[BrowserConfig] = None,
        detector: Optional[ChallengeDetector] = None,
        *,
        check_before_click: bool = False,
        name: str = "browser",
    ) -> None:
        super().__init__(config, detector, check_before_click=check_before_click)
        self._name = name
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"pw-{name}")
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    def _run(self, func: Callable[..., T], *args: Any) -> T:
        return self._executor.submit(func, *args).result()

    def _release(self) -> None:
        self._executor.shutdown(wait=True)

    # Lifecycle -----------------------------------------------------------------

    def _launch(self) -> None:
        LOGGER.debug("Starting Playwright browser for %s", self._name)
        try:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(
                headless=self._config.headless,
                args=list(self._config.launch_args),
            )
            context_kwargs: dict[str, Any] = {
                "viewport": {
                    "width": self._config.viewport_width,
                    "height": self._config.viewport_height,
                },
            }
            if self._config.user_agent:
                context_kwargs["user_agent"] = self._config.user_agent
            self._context = self._browser.new_context(**context_kwargs)
            self._page = self._context.new_page()
        except Exception as exc:
            # close() skips _shutdown for sessions that never finished starting.
            self._shutdown()
            raise BrowserLaunchError(f"Failed to launch browser: {exc}") from exc
        self._page.on("console", lambda msg: LOGGER.debug("[%s console] %s", self._name, msg.text))
        LOGGER.info("Browser ready for %s", self._name)

    def _shutdown(self) -> None:
        LOGGER.debug("Stopping Playwright browser for %s", self._name)
        try:
            if self._context:
                self._context.close()
            if self._browser:
                self._browser.close()
        except Error as exc:
            LOGGER.warning("Error while closing browser for %s: %s", self._name, exc)
        finally:
            if self._playwright:
                self._playwright.stop()
            self._page = None
            self._context = None
            self._browser = None
            self._playwright = None

    # Primitives ----------------------------------------------------------------

    @property
    def page(self):
        if self._page is None:
            raise BrowserError("Browser page is not available")
        return self._page

    def _goto(self, url: str, timeout: float) -> PageLocation:
        try:
            self.page.goto(url, wait_until="networkidle", timeout=_ms(timeout))
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeout(f"Navigation to {url} timed out after {timeout}s") from exc
        except Error as exc:
            raise BrowserError(f"Failed to navigate to {url}: {exc}") from exc
        return PageLocation(url=self.page.url, title=self.page.title())

    def _wait_for(self, selector: str, timeout: float) -> None:
        try:
            self.page.wait_for_selector(selector, state="visible", timeout=_ms(timeout))
        except PlaywrightTimeoutError as exc:
            raise ElementNotFound(selector, f"timed out after {timeout}s") from exc
        except Error as exc:
            raise ElementNotFound(selector, str(exc)) from exc

    def _fill(self, selector: str, value: str) -> None:
        try:
            self.page.fill(selector, value, timeout=_ms(self._config.element_timeout))
        except Error as exc:
            raise BrowserError(f"Could not type into {selector}: {exc}") from exc

    def _select(self, selector: str, value: str) -> None:
        try:
            self.page.select_option(selector, value, timeout=_ms(self._config.element_timeout))
        except Error as exc:
            raise BrowserError(f"Could not select {value!r} in {selector}: {exc}") from exc

    def _set_checked(self, selector: str, checked: bool) -> None:
        try:
            self.page.locator(selector).first.set_checked(
                checked,
                timeout=_ms(self._config.element_timeout),
            )
        except Error as exc:
            raise BrowserError(f"Could not toggle {selector}: {exc}") from exc

    def _click(self, selector: str) -> None:
        try:
            self.page.click(selector, timeout=_ms(self._config.element_timeout))
        except Error as exc:
            raise ClickFailed(selector, str(exc)) from exc

    def _pause(self, seconds: float) -> None:
        if seconds > 0:
            self.page.wait_for_timeout(seconds * 1000)

    def _first_visible(self, selectors: Sequence[str]) -> Optional[str]:
        for selector in selectors:
            try:
                if self.page.locator(selector).first.is_visible():
                    return selector
            except Error as exc:
                LOGGER.debug("Ignoring signature %s: %s", selector, exc)
        return None

    def _body_text(self) -> str:
        try:
            return self.page.inner_text("body", timeout=_ms(self._config.element_timeout))
        except Error as exc:
            raise BrowserError(f"Could not read page text: {exc}") from exc

    def _form_fields(self) -> list[dict[str, Any]]:
        try:
            return list(self.page.evaluate(_FORM_FIELDS_SCRIPT))
        except Error as exc:
            raise BrowserError(f"Failed to extract form fields: {exc}") from exc

    def _page_title(self) -> str:
        return self.page.title()

    def _page_url(self) -> str:
        return self.page.url

    def _capture_png(self) -> bytes:
        try:
            return self.page.screenshot(type="png", full_page=False)
        except Error as exc:
            raise BrowserError(f"Failed to take screenshot: {exc}") from exc


def _ms(seconds: float) -> float:
    return seconds * 1000
