"""Media download and embedding."""

import asyncio
import base64
import logging
from typing import List, Optional

import aiohttp

from community_crawler.models.records import MediaRecord

logger = logging.getLogger(__name__)

HTTP_HEADERS = {
    "Accept-Encoding": "gzip, deflate",
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36",
}


class MediaFetcher:
    """
    Resolve an item's media URLs into ``MediaRecord`` rows.

    In ``embed`` mode each URL is downloaded and stored base64-encoded with
    its MIME type and size; a failed download still yields a URL-only row.
    In ``skip`` mode no download happens.
    """

    def __init__(self, mode: str = "embed", timeout_sec: float = 30.0, proxy: Optional[str] = None):
        self.mode = mode
        self.timeout = aiohttp.ClientTimeout(total=timeout_sec)
        self.proxy = proxy
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "MediaFetcher":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def collect(self, urls: List[str]) -> List[MediaRecord]:
        if self.mode != "embed":
            return [MediaRecord(url=url) for url in urls]

        records = []
        for url in urls:
            try:
                records.append(await self._download(url))
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.debug(f"Media download failed for {url}: {e}")
                records.append(MediaRecord(url=url))
        return records

    async def _download(self, url: str) -> MediaRecord:
        if self._session is None:
            self._session = aiohttp.ClientSession(headers=HTTP_HEADERS, timeout=self.timeout)

        async with self._session.get(url, proxy=self.proxy) as resp:
            if resp.status < 200 or resp.status >= 300:
                return MediaRecord(url=url)
            payload = await resp.read()
            return MediaRecord(
                url=url,
                data=base64.b64encode(payload).decode("ascii"),
                mime=resp.headers.get("Content-Type"),
                size_bytes=len(payload),
            )
