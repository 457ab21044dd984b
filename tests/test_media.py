"""Tests for media collection."""

import asyncio
import base64
import unittest
from unittest.mock import AsyncMock, MagicMock

import aiohttp

from community_crawler.collector.media import MediaFetcher

URLS = ["https://i.test/a.png", "https://i.test/b.jpg"]


def fake_session(status=200, payload=b"\x89PNG", content_type="image/png", error=None):
    response = MagicMock()
    response.status = status
    response.headers = {"Content-Type": content_type}
    response.read = AsyncMock(return_value=payload)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    if error is not None:
        session.get.side_effect = error
    else:
        session.get.return_value = context
    session.close = AsyncMock()
    return session


class TestMediaFetcher(unittest.TestCase):

    def test_skip_mode_stores_urls_only(self):
        records = asyncio.run(MediaFetcher("skip").collect(URLS))

        self.assertEqual([r.url for r in records], URLS)
        self.assertTrue(all(r.data is None and r.mime is None and r.size_bytes is None for r in records))

    def test_embed_mode_downloads_payload(self):
        fetcher = MediaFetcher("embed")
        fetcher._session = fake_session()

        records = asyncio.run(fetcher.collect(URLS[:1]))

        self.assertEqual(records[0].data, base64.b64encode(b"\x89PNG").decode("ascii"))
        self.assertEqual(records[0].mime, "image/png")
        self.assertEqual(records[0].size_bytes, 4)

    def test_failed_download_keeps_url(self):
        fetcher = MediaFetcher("embed")
        fetcher._session = fake_session(error=aiohttp.ClientError("connection reset"))

        records = asyncio.run(fetcher.collect(URLS))

        self.assertEqual([r.url for r in records], URLS)
        self.assertTrue(all(r.data is None for r in records))

    def test_http_error_keeps_url(self):
        fetcher = MediaFetcher("embed")
        fetcher._session = fake_session(status=404)

        records = asyncio.run(fetcher.collect(URLS[:1]))

        self.assertIsNone(records[0].data)
        self.assertEqual(records[0].url, URLS[0])

    def test_close_releases_session(self):
        fetcher = MediaFetcher("embed")
        session = fake_session()
        fetcher._session = session

        asyncio.run(fetcher.close())

        session.close.assert_awaited_once()
        self.assertIsNone(fetcher._session)


if __name__ == "__main__":
    unittest.main()
