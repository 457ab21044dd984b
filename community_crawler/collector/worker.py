"""A crawl worker: one browser session, one slice of communities."""

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable, List, Optional

from community_crawler.collector.fetcher import PoliteFetcher
from community_crawler.collector.media import MediaFetcher
from community_crawler.config import Config
from community_crawler.exceptions import ExtractionError, SessionLostError, TransportError
from community_crawler.extraction.base import Extractor, ListingEntry
from community_crawler.models.messages import BeginCommunity, ItemBundle
from community_crawler.models.records import ItemRecord, ReplyRecord, SnapshotTuple
from community_crawler.storage.write_funnel import WriteFunnel
from community_crawler.transport.base import Transport, TransportFactory

logger = logging.getLogger(__name__)

# Inter-item delay is the base delay scaled by a factor drawn from this band
DELAY_JITTER = (0.6, 1.4)


class Worker:
    """
    Crawl an ordered list of communities with a dedicated browser session.

    Failure handling:
      - listing page cannot be loaded or parsed: move on to the next community
      - item page cannot be loaded or parsed: skip the item
      - browser session lost: abandon all remaining communities
    """

    def __init__(
        self,
        index: int,
        communities: List[str],
        transport_factory: TransportFactory,
        fetcher: PoliteFetcher,
        extractor: Extractor,
        funnel: WriteFunnel,
        scan_id: int,
        config: Config,
        proxy: Optional[str] = None,
        media_fetcher: Optional[MediaFetcher] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        prometheus_exporter=None,
    ):
        self.index = index
        self.communities = list(communities)
        self.transport_factory = transport_factory
        self.fetcher = fetcher
        self.extractor = extractor
        self.funnel = funnel
        self.scan_id = scan_id
        self.config = config
        self.proxy = proxy
        self.media_fetcher = media_fetcher or MediaFetcher(config.media_mode, proxy=proxy)
        self.rng = rng or random.Random()
        self._sleep = sleep
        self.prometheus_exporter = prometheus_exporter

        self.saved = 0
        self.communities_done = 0
        self.session_lost = False
        self.started_at: Optional[float] = None

    @property
    def elapsed(self) -> float:
        return 0.0 if self.started_at is None else time.monotonic() - self.started_at

    async def run(self) -> int:
        """
        Crawl every assigned community.

        Returns:
            Number of items handed to the write funnel
        """
        self.started_at = time.monotonic()

        try:
            transport = await self.transport_factory.open(self.index, self.proxy)
        except Exception as e:
            logger.error(f"[worker {self.index}] failed to start browser session: {str(e)}")
            return 0

        try:
            async with self.media_fetcher:
                for community in self.communities:
                    self.funnel.send(BeginCommunity(community))
                    await self._crawl_community(transport, community)
                    self.communities_done += 1
                    logger.info(
                        f"[worker {self.index}] {community} done "
                        f"({self.communities_done}/{len(self.communities)} communities, "
                        f"{self.saved} items, {self.elapsed:.0f}s elapsed)"
                    )
        except SessionLostError as e:
            self.session_lost = True
            logger.error(
                f"[worker {self.index}] session lost, abandoning "
                f"{len(self.communities) - self.communities_done} remaining communities: {e}"
            )
        finally:
            await self._shutdown(transport)

        return self.saved

    async def _crawl_community(self, transport: Transport, community: str) -> None:
        url: Optional[str] = self.extractor.listing_url(community)
        pages = 0

        while url and pages < self.config.max_pages:
            logger.debug(f"[worker {self.index}] {community} page {pages + 1}/{self.config.max_pages}")

            result = await self.fetcher.fetch(transport, url)
            if not result:
                logger.warning(f"[worker {self.index}] could not load listing {url}, skipping {community}")
                return

            try:
                entries = await self.extractor.listing(transport)
                # Read the link now; item navigation replaces the listing page
                next_url = await self.extractor.next_page(transport)
            except SessionLostError:
                raise
            except (ExtractionError, TransportError) as e:
                logger.error(f"[{community}] listing parse error: {str(e)}")
                return

            for position, entry in enumerate(entries, 1):
                logger.debug(
                    f"[worker {self.index}] {community} page {pages + 1} item {position}/{len(entries)}"
                )
                await self._crawl_item(transport, community, entry)

            url = next_url
            pages += 1

    async def _crawl_item(self, transport: Transport, community: str, entry: ListingEntry) -> bool:
        item_url = self.extractor.item_url(entry.item_id)

        result = await self.fetcher.fetch(transport, item_url)
        if not result:
            # SessionLostError propagates if the failure was the session going away
            try:
                await transport.current_url()
            except SessionLostError:
                raise
            except TransportError:
                pass
            logger.warning(f"[{community}] giving up on item {entry.item_id}")
            return False

        try:
            fields = await self.extractor.item(transport)
        except SessionLostError:
            raise
        except (ExtractionError, TransportError) as e:
            logger.error(f"[{community}] item {entry.item_id} parse error: {str(e)}")
            return False

        created_at = fields.created_at if fields.created_at is not None else entry.created_at
        item = ItemRecord(
            id=entry.item_id,
            url=entry.url or item_url,
            title=fields.title,
            author=fields.author,
            score=fields.score,
            created_at=created_at,
            body=fields.body,
            reply_count=fields.reply_count,
        )
        replies = [
            ReplyRecord(
                id=reply.id,
                item_id=entry.item_id,
                parent_ref=reply.parent_ref,
                author=reply.author,
                body=reply.body,
                score=reply.score,
                created_at=reply.created_at,
            )
            for reply in fields.replies
            if reply.id
        ][: self.config.max_replies_per_item]
        media = await self.media_fetcher.collect(fields.media_urls)

        self.funnel.send(
            ItemBundle(
                community=community,
                item=item,
                snapshot=SnapshotTuple(
                    item_id=item.id,
                    scan_id=self.scan_id,
                    score=item.score,
                    reply_count=item.reply_count,
                    created_at=item.created_at,
                ),
                media=media,
                replies=replies,
            )
        )
        self.saved += 1
        if self.prometheus_exporter:
            self.prometheus_exporter.record_item_saved(community)

        await self._sleep(self.config.item_delay_sec * self.rng.uniform(*DELAY_JITTER))
        return True

    async def _shutdown(self, transport: Transport) -> None:
        try:
            await transport.close()
        except Exception as e:
            logger.debug(f"[worker {self.index}] error closing browser session: {str(e)}")
