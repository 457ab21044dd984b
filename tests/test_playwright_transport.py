"""Tests for the Playwright transport helpers and error mapping."""

import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock

from playwright.async_api import Error as PlaywrightError

from community_crawler.exceptions import SessionLostError, TransportError
from community_crawler.transport.playwright_transport import (
    PlaywrightTransport,
    is_session_lost_message,
    worker_fingerprint,
)


class TestHelpers(unittest.TestCase):

    def test_session_lost_markers(self):
        self.assertTrue(is_session_lost_message("Target page, context or browser has been closed"))
        self.assertTrue(is_session_lost_message("Browser closed."))
        self.assertFalse(is_session_lost_message("Timeout 30000ms exceeded"))

    def test_fingerprint_is_stable_per_worker(self):
        self.assertEqual(worker_fingerprint(3), worker_fingerprint(3))
        fingerprint = worker_fingerprint(0)
        self.assertIn("user_agent", fingerprint)
        self.assertIn("width", fingerprint["viewport"])


class TestPlaywrightTransport(unittest.TestCase):

    def _transport(self, page):
        return PlaywrightTransport(MagicMock(stop=AsyncMock()), MagicMock(close=AsyncMock()), page)

    def test_navigate(self):
        page = MagicMock()
        page.goto = AsyncMock(return_value=MagicMock(status=200))
        page.title = AsyncMock(return_value="python")
        page.content = AsyncMock(return_value="<html></html>")
        page.url = "https://old.reddit.com/r/python/"

        rendered = asyncio.run(self._transport(page).navigate("https://old.reddit.com/r/python/"))

        self.assertEqual(rendered.status, 200)
        self.assertEqual(rendered.title, "python")

    def test_timeout_is_transient(self):
        page = MagicMock()
        page.goto = AsyncMock(side_effect=PlaywrightError("Timeout 30000ms exceeded"))

        with self.assertRaises(TransportError) as ctx:
            asyncio.run(self._transport(page).navigate("https://old.reddit.com/"))
        self.assertNotIsInstance(ctx.exception, SessionLostError)

    def test_closed_target_is_session_lost(self):
        page = MagicMock()
        page.evaluate = AsyncMock(side_effect=PlaywrightError("Target page, context or browser has been closed"))

        with self.assertRaises(SessionLostError):
            asyncio.run(self._transport(page).evaluate("() => 1"))

    def test_closed_page_probe(self):
        page = MagicMock()
        page.is_closed.return_value = True

        with self.assertRaises(SessionLostError):
            asyncio.run(self._transport(page).current_url())

    def test_close_stops_playwright(self):
        playwright = MagicMock(stop=AsyncMock())
        context = MagicMock(close=AsyncMock())
        transport = PlaywrightTransport(playwright, context, MagicMock())

        asyncio.run(transport.close())

        context.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()


if __name__ == "__main__":
    unittest.main()
