"""Playwright-backed browser sessions."""

import logging
import os
import random
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from community_crawler.config import BrowserConfig
from community_crawler.exceptions import SessionLostError, TransportError
from community_crawler.transport.base import RenderedPage

logger = logging.getLogger(__name__)

USER_AGENTS = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_2) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.2 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
)
LOCALES = ("en-US", "en-GB", "en-CA")
VIEWPORTS = ((1366, 768), (1400, 900), (1600, 900), (1680, 1050))

BROWSER_ARGS = [
    "--disable-gpu",
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
    "--no-first-run",
    "--no-default-browser-check",
]

SESSION_LOST_MARKERS = (
    "target closed",
    "has been closed",
    "browser closed",
    "connection closed",
    "not connected",
    "session closed",
)


def is_session_lost_message(message: str) -> bool:
    text = (message or "").lower()
    return any(marker in text for marker in SESSION_LOST_MARKERS)


def _wrap_error(e: Exception, action: str) -> TransportError:
    if is_session_lost_message(str(e)):
        return SessionLostError(f"{action}: {e}")
    return TransportError(f"{action}: {e}")


def worker_fingerprint(worker_index: int) -> dict:
    """Stable per-worker user agent, locale and viewport."""
    rng = random.Random(1000 + worker_index)
    width, height = rng.choice(VIEWPORTS)
    return {
        "user_agent": rng.choice(USER_AGENTS),
        "locale": rng.choice(LOCALES),
        "viewport": {"width": width, "height": height},
    }


class PlaywrightTransport:
    """A single Chromium page driven through Playwright's async API."""

    def __init__(self, playwright, context, page, browser=None, navigation_timeout_sec: int = 30):
        self._playwright = playwright
        self._context = context
        self._page = page
        self._browser = browser
        self._navigation_timeout_ms = navigation_timeout_sec * 1000

    async def navigate(self, url: str) -> RenderedPage:
        try:
            response = await self._page.goto(
                url, wait_until="domcontentloaded", timeout=self._navigation_timeout_ms
            )
            title = await self._page.title()
            html = await self._page.content()
        except PlaywrightError as e:
            raise _wrap_error(e, f"navigate {url}") from e
        status = response.status if response is not None else None
        return RenderedPage(url=self._page.url, title=title, html=html, status=status)

    async def current_url(self) -> str:
        if self._page.is_closed():
            raise SessionLostError("page is closed")
        try:
            return await self._page.evaluate("() => window.location.href")
        except PlaywrightError as e:
            raise _wrap_error(e, "current_url") from e

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        try:
            return await self._page.evaluate(script, arg)
        except PlaywrightError as e:
            raise _wrap_error(e, "evaluate") from e

    async def close(self) -> None:
        try:
            await self._context.close()
            if self._browser is not None:
                await self._browser.close()
        except PlaywrightError as e:
            logger.debug(f"Ignoring error while closing browser: {e}")
        finally:
            await self._playwright.stop()


class PlaywrightTransportFactory:
    """Launches one isolated Chromium session per worker."""

    def __init__(self, config: BrowserConfig):
        self.config = config

    async def open(self, worker_index: int, proxy: Optional[str] = None) -> PlaywrightTransport:
        fingerprint = worker_fingerprint(worker_index)
        launch_kwargs = {"headless": self.config.headless, "args": list(BROWSER_ARGS)}
        if proxy:
            launch_kwargs["proxy"] = {"server": proxy}

        playwright = await async_playwright().start()
        browser = None
        try:
            if self.config.user_data_dir:
                profile_dir = os.path.join(self.config.user_data_dir, f"worker-{worker_index}")
                os.makedirs(profile_dir, exist_ok=True)
                context = await playwright.chromium.launch_persistent_context(
                    profile_dir, **launch_kwargs, **fingerprint
                )
            else:
                browser = await playwright.chromium.launch(**launch_kwargs)
                context = await browser.new_context(**fingerprint)
            context.set_default_timeout(self.config.script_timeout_sec * 1000)
            page = context.pages[0] if context.pages else await context.new_page()
        except PlaywrightError as e:
            await playwright.stop()
            raise TransportError(f"failed to start browser for worker {worker_index}: {e}") from e

        logger.info(
            f"Worker {worker_index} browser ready "
            f"(proxy={'yes' if proxy else 'no'}, profile={'isolated' if self.config.user_data_dir else 'ephemeral'})"
        )
        return PlaywrightTransport(
            playwright,
            context,
            page,
            browser=browser,
            navigation_timeout_sec=self.config.navigation_timeout_sec,
        )
