"""Playwright-backed browser session for driving NSS deployments."""
from __future__ import annotations

import logging
from typing import Any, Callable, Iterator, List, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .config import Selectors, SessionConfig
from .errors import ElementNotFoundError, NavigationError
from .models import ConsoleEntry, Deployment, HealthSignals, RenderedStrategy, RestorationOutcome

logger = logging.getLogger(__name__)

BLANK_PAGE = "about:blank"

_CONSOLE_LEVELS = {
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
    "log": logging.INFO,
    "info": logging.INFO,
    "dir": logging.INFO,
    "table": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "assert": logging.ERROR,
}


class DriverSession:
    """One browser page plus the resources that keep it alive.

    Build it with :meth:`launch` for a real browser, or pass any object with
    the Playwright ``Page`` surface used below (tests use a fake page).
    """

    def __init__(
        self,
        page: Any,
        *,
        selectors: Selectors | None = None,
        timeout_ms: int = 30000,
        closers: Optional[List[Callable[[], None]]] = None,
    ) -> None:
        self.page = page
        self.selectors = selectors or Selectors()
        self.timeout_ms = timeout_ms
        self._closers = list(closers or [])
        self._console: List[ConsoleEntry] = []
        self._closed = False
        page.on("console", self._on_console)
        page.on("pageerror", self._on_page_error)

    # -------------------------------------------------------------- construction
    @classmethod
    def launch(cls, config: SessionConfig | None = None, *, playwright: Any = None) -> "DriverSession":
        """Launch a browser page for ``config``.

        Pass a running ``playwright`` driver to share it between sessions that
        must be alive at the same time; the caller then stops it after every
        session is closed. Without one the session starts and owns its driver.
        """

        config = config or SessionConfig()
        closers: List[Callable[[], None]] = []
        if playwright is None:
            playwright = sync_playwright().start()
            closers.append(playwright.stop)
        try:
            browser_type = getattr(playwright, config.browser)
            browser = browser_type.launch(headless=config.headless)
            closers.insert(0, browser.close)
            context = browser.new_context()
            page = context.new_page()
            page.set_default_timeout(config.timeout_ms)
            page.set_default_navigation_timeout(config.timeout_ms)
        except Exception:
            _release(closers)
            raise
        logger.debug("Launched %s (headless=%s)", config.browser, config.headless)
        return cls(page, selectors=config.selectors, timeout_ms=config.timeout_ms, closers=closers)

    def __enter__(self) -> "DriverSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -------------------------------------------------------------- navigation
    def open(self, deployment: Deployment, strategy_hash: Optional[str] = None) -> None:
        """Navigate to the deployment, optionally restoring ``strategy_hash``.

        The application reads the URL hash only while the document
        initializes, so a restoration goes through a blank page first.
        """

        if strategy_hash is None:
            self._goto(deployment.address)
            return
        self._goto(BLANK_PAGE)
        self._goto(deployment.url_with_hash(strategy_hash))

    def trigger_next_strategy(self) -> None:
        self._element(self.selectors.next_strategy).click()

    # -------------------------------------------------------------- DOM reads
    def read_rendered_strategy_text(self) -> str:
        return self._element(self.selectors.rendered_strategy).input_value()

    def read_validation_errors_text(self) -> str:
        return self._element(self.selectors.validation_errors).inner_text().strip()

    def read_json_round_trip_result_text(self) -> str:
        return self._element(self.selectors.round_trip_result).inner_text().strip()

    def read_generation_seed_text(self) -> str:
        return self._element(self.selectors.generation_seed).input_value()

    def read_restoration_notification_text(self) -> str:
        return self._element(self.selectors.notification).inner_text().strip()

    def read_error_reporting_url(self) -> str:
        selector = self.selectors.error_reporting_link
        href = self._element(selector).get_attribute("href")
        if not href:
            raise ElementNotFoundError(selector, "link has no href")
        return href

    def read_rendered_strategy(self, *, with_seed: bool = True) -> RenderedStrategy:
        text = self.read_rendered_strategy_text()
        seed = self.read_generation_seed_text() if with_seed else None
        return RenderedStrategy(text=text, seed=seed)

    def read_health_signals(self) -> HealthSignals:
        return HealthSignals(
            validation_errors=self.read_validation_errors_text(),
            round_trip_result=self.read_json_round_trip_result_text(),
        )

    def read_restoration_outcome(self, failure_prefix: str) -> RestorationOutcome:
        element = self._element(self.selectors.notification)
        outcome = RestorationOutcome(
            notification=element.inner_text().strip(),
            status=element.get_attribute(self.selectors.status_attribute),
        )
        if outcome.failed(failure_prefix):
            outcome.issue_url = self.read_error_reporting_url()
        return outcome

    # -------------------------------------------------------------- console
    def read_console_log_entries(self, minimum_severity: int = logging.WARNING) -> Iterator[ConsoleEntry]:
        """Drain captured console entries at or above ``minimum_severity``."""

        entries, self._console = self._console, []
        return (entry for entry in entries if entry.level >= minimum_severity)

    def _on_console(self, message: Any) -> None:
        level = _CONSOLE_LEVELS.get(message.type, logging.INFO)
        location = message.location or {}
        source = location.get("url") or None
        self._console.append(ConsoleEntry(level=level, message=message.text, source=source))

    def _on_page_error(self, error: Any) -> None:
        self._console.append(ConsoleEntry(level=logging.ERROR, message=str(error), source="pageerror"))

    # -------------------------------------------------------------- lifecycle
    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        _release(self._closers)

    @property
    def closed(self) -> bool:
        return self._closed

    # -------------------------------------------------------------- helpers
    def _goto(self, url: str) -> None:
        try:
            self.page.goto(url, wait_until="load", timeout=self.timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise NavigationError(url, f"timed out after {self.timeout_ms} ms") from exc
        except PlaywrightError as exc:
            raise NavigationError(url, str(exc)) from exc

    def _element(self, selector: str) -> Any:
        try:
            handle = self.page.wait_for_selector(selector, state="attached", timeout=self.timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise ElementNotFoundError(selector, f"not attached within {self.timeout_ms} ms") from exc
        if handle is None:
            raise ElementNotFoundError(selector)
        return handle


def _release(closers: List[Callable[[], None]]) -> None:
    for closer in closers:
        try:
            closer()
        except PlaywrightError:
            logger.warning("Ignoring error while closing browser session", exc_info=True)


__all__ = ["DriverSession", "BLANK_PAGE"]
