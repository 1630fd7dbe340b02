"""
Browser session: one Chromium process and page per search request.

Anti-detection posture is part of the launch configuration handed to each
session, never process-wide state.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from loguru import logger
from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Frame,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)
from playwright_stealth import Stealth

from deedscraper import config
from deedscraper.exceptions import (
    DownloadFailed,
    LaunchError,
    NavigationTimeout,
    ScriptError,
    SelectorNotFound,
)

BASE_LAUNCH_ARGS = (
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
)

EXTRA_HTTP_HEADERS = {
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "DNT": "1",
}

MASK_WEBDRIVER_SCRIPT = "Object.defineProperty(navigator, 'webdriver', { get: () => undefined });"


class StealthPosture(Enum):
    NONE = "none"          # Vanilla automation
    MINIMAL = "minimal"    # Mask navigator.webdriver only
    STEALTH = "stealth"    # Full playwright-stealth evasions


@dataclass(frozen=True, slots=True)
class LaunchConfig:
    headless: bool = True
    executable_path: str | None = None
    stealth: StealthPosture = StealthPosture.MINIMAL
    user_agent: str = config.USER_AGENT
    viewport: dict[str, int] = field(default_factory=lambda: dict(config.VIEWPORT))
    locale: str = config.LOCALE
    timezone_id: str = "America/New_York"
    navigation_timeout_ms: int = config.NAVIGATION_TIMEOUT_MS
    action_timeout_ms: int = config.ACTION_TIMEOUT_MS
    extra_args: tuple[str, ...] = ()


class BrowserSession:
    """Owns a Playwright browser, context and current page.

    Use as ``async with BrowserSession(cfg) as browser:`` so ``close()`` runs
    exactly once on every path.
    """

    def __init__(self, launch: LaunchConfig) -> None:
        self.launch = launch
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._closed = False

    @classmethod
    async def open(cls, launch: LaunchConfig) -> "BrowserSession":
        session = cls(launch)
        await session.start()
        return session

    async def __aenter__(self) -> "BrowserSession":
        if self._browser is None:
            await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.launch.headless,
                executable_path=self.launch.executable_path,
                args=[*BASE_LAUNCH_ARGS, *self.launch.extra_args],
            )
            self._context = await self._browser.new_context(
                user_agent=self.launch.user_agent,
                viewport=self.launch.viewport,
                screen=self.launch.viewport,
                locale=self.launch.locale,
                timezone_id=self.launch.timezone_id,
                extra_http_headers=EXTRA_HTTP_HEADERS,
            )
            self._context.set_default_timeout(self.launch.action_timeout_ms)
            self._context.set_default_navigation_timeout(self.launch.navigation_timeout_ms)
            if self.launch.stealth is StealthPosture.MINIMAL:
                await self._context.add_init_script(MASK_WEBDRIVER_SCRIPT)
            self._page = await self._context.new_page()
            if self.launch.stealth is StealthPosture.STEALTH:
                await Stealth().apply_stealth_async(self._page)
        except PlaywrightError as e:
            await self.close()
            raise LaunchError(f"Browser launch failed: {e}") from e
        logger.debug(
            "Browser launched (headless={}, stealth={})",
            self.launch.headless,
            self.launch.stealth.value,
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._browser:
                await self._browser.close()
        except PlaywrightError as e:
            logger.warning(f"Error closing browser: {e}")
        finally:
            self._browser = None
            self._context = None
            self._page = None
            if self._playwright:
                await self._playwright.stop()
                self._playwright = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def page(self) -> Page:
        if self._page is None:
            raise LaunchError("Browser session is not open")
        return self._page

    def adopt(self, page: Page) -> None:
        """Make ``page`` (usually a popup) the current page."""
        self._page = page

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def navigate(
        self,
        url: str,
        *,
        wait_until: str = "networkidle",
        wait_for: str | None = None,
        timeout_ms: int | None = None,
    ) -> None:
        """Go to ``url`` and wait for network idle or a caller-given selector."""
        timeout = timeout_ms or self.launch.navigation_timeout_ms
        try:
            await self.page.goto(url, wait_until=wait_until, timeout=timeout)
            if wait_for:
                await self.page.wait_for_selector(wait_for, timeout=timeout)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(f"Timed out loading {url}", url=url) from e
        except PlaywrightError as e:
            raise ScriptError(f"Navigation to {url} failed: {e}", url=url) from e

    async def wait_for_load(self, state: str = "networkidle", timeout_ms: int | None = None) -> None:
        try:
            await self.page.wait_for_load_state(state, timeout=timeout_ms or self.launch.navigation_timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(f"Page never reached {state}", url=self.page.url) from e

    async def run_in_page(
        self,
        script: str,
        arg: Any = None,
        *,
        expect_non_empty: bool = False,
        what: str = "elements",
        target: Page | Frame | None = None,
    ) -> Any:
        """Evaluate ``script`` (a JS function) in the current page or ``target``.

        Raises ``SelectorNotFound`` if ``expect_non_empty`` and the script
        returns nothing.
        """
        try:
            result = await (target or self.page).evaluate(script, arg)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(f"Timed out evaluating script for {what}", url=self.page.url) from e
        except PlaywrightError as e:
            raise ScriptError(f"Script for {what} failed: {e}", url=self.page.url) from e
        if expect_non_empty and not result:
            raise SelectorNotFound(f"No {what} found", url=self.page.url)
        return result

    async def click(self, selector: str, *, timeout_ms: int | None = None) -> None:
        try:
            await self.page.click(selector, timeout=timeout_ms or self.launch.action_timeout_ms)
        except PlaywrightTimeoutError as e:
            raise SelectorNotFound(f"Could not click {selector}", url=self.page.url) from e
        except PlaywrightError as e:
            raise ScriptError(f"Click on {selector} failed: {e}", url=self.page.url) from e

    async def fill(self, selector: str, value: str, *, timeout_ms: int | None = None) -> None:
        try:
            await self.page.fill(selector, value, timeout=timeout_ms or self.launch.action_timeout_ms)
        except PlaywrightTimeoutError as e:
            raise SelectorNotFound(f"Input {selector} not found", url=self.page.url) from e
        except PlaywrightError as e:
            raise ScriptError(f"Filling {selector} failed: {e}", url=self.page.url) from e

    async def exists(self, selector: str) -> bool:
        return await self.page.query_selector(selector) is not None

    def frames(self) -> list[Frame]:
        return list(self.page.frames)

    def frame_urls(self) -> list[str]:
        return [f.url for f in self.page.frames]

    async def press(self, key: str) -> None:
        await self.page.keyboard.press(key)

    # ------------------------------------------------------------------
    # Explicit waits
    # ------------------------------------------------------------------

    async def wait_for(
        self,
        predicate: Callable[[], Any],
        *,
        timeout: float,
        interval: float = 0.5,
        description: str = "condition",
    ) -> Any:
        """Poll ``predicate`` (sync or async) until it returns something truthy or the deadline passes."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            value = predicate()
            if inspect.isawaitable(value):
                value = await value
            if value:
                return value
            if loop.time() >= deadline:
                raise NavigationTimeout(f"Gave up waiting for {description} after {timeout:.0f}s")
            await asyncio.sleep(interval)

    async def settle(self, seconds: float = config.SETTLE_SECONDS) -> None:
        """Give client-side rendering time to finish after a transition."""
        await asyncio.sleep(seconds)

    async def expect_popup(
        self,
        action: Callable[[], Awaitable[Any]],
        *,
        timeout_ms: int = config.POPUP_TIMEOUT_MS,
    ) -> Page:
        """Run ``action`` and return the page it opens."""
        try:
            async with self.page.expect_popup(timeout=timeout_ms) as popup_info:
                await action()
            popup = await popup_info.value
            await popup.wait_for_load_state("domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout("Expected popup never opened", url=self.page.url) from e
        return popup

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    async def fetch_bytes(self, url: str, *, timeout_ms: int | None = None) -> bytes:
        """Fetch ``url`` with the session's cookies and return the raw body."""
        if self._context is None:
            raise LaunchError("Browser session is not open")
        try:
            response = await self._context.request.get(
                url,
                timeout=timeout_ms or self.launch.navigation_timeout_ms,
                headers={"Referer": self.page.url},
            )
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(f"Timed out downloading {url}", url=url) from e
        except PlaywrightError as e:
            raise DownloadFailed(f"Download of {url} failed: {e}", url=url) from e
        if not response.ok:
            raise DownloadFailed(f"Download returned HTTP {response.status}", url=url)
        return await response.body()


# Builds an unopened session; the caller enters it with ``async with``.
SessionFactory = Callable[[LaunchConfig], BrowserSession]
