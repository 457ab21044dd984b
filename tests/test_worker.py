"""Tests for the crawl worker."""

import asyncio
import random
import unittest
from unittest.mock import AsyncMock, MagicMock

from community_crawler.collector.media import MediaFetcher
from community_crawler.collector.worker import Worker
from community_crawler.exceptions import ExtractionError, SessionLostError, TransportError
from community_crawler.extraction.base import ItemFields, ListingEntry, ReplyFields
from community_crawler.models.messages import BeginCommunity, ItemBundle
from tests.fakes import FakeClock, FakeExtractor, FakeTransportFactory, make_config, make_fetcher


class TestWorker(unittest.TestCase):
    """Test cases for the Worker class."""

    def setUp(self):
        self.clock = FakeClock()
        self.funnel = MagicMock()
        self.extractor = FakeExtractor()
        self.config = make_config(max_pages=5)

    def _worker(self, communities, responses=None, factory=None, media_fetcher=None, **kwargs):
        self.factory = factory or FakeTransportFactory(responses)
        fetcher = make_fetcher(self.clock, max_attempts=2, settle_delay_sec=0.0)
        return Worker(
            index=0,
            communities=communities,
            transport_factory=self.factory,
            fetcher=fetcher,
            extractor=self.extractor,
            funnel=self.funnel,
            scan_id=7,
            config=self.config,
            media_fetcher=media_fetcher or MediaFetcher("skip"),
            rng=random.Random(1),
            sleep=self.clock.sleep,
            **kwargs,
        )

    def _listing(self, community, item_ids, next_url=None, url=None):
        url = url or self.extractor.listing_url(community)
        self.extractor.listings[url] = ([ListingEntry(item_id=i, created_at=1000) for i in item_ids], next_url)
        return url

    def _messages(self):
        return [c.args[0] for c in self.funnel.send.call_args_list]

    def _bundles(self):
        return [m for m in self._messages() if isinstance(m, ItemBundle)]

    def test_crawls_every_item(self):
        self._listing("python", ["a1", "a2"])
        worker = self._worker(["python"])

        saved = asyncio.run(worker.run())

        self.assertEqual(saved, 2)
        messages = self._messages()
        self.assertEqual(messages[0], BeginCommunity("python"))
        self.assertEqual([b.item.id for b in self._bundles()], ["a1", "a2"])
        self.assertTrue(all(b.snapshot.scan_id == 7 for b in self._bundles()))
        self.assertTrue(self.factory.transports[0].closed)

    def test_skips_item_that_fails_to_load(self):
        self._listing("python", ["bad", "good"])
        responses = {self.extractor.item_url("bad"): [TransportError("net::ERR_CONNECTION_RESET")]}
        worker = self._worker(["python"], responses)

        saved = asyncio.run(worker.run())

        self.assertEqual(saved, 1)
        self.assertEqual([b.item.id for b in self._bundles()], ["good"])

    def test_skips_item_that_fails_to_parse(self):
        self._listing("python", ["bad", "good"])
        self.extractor.items["bad"] = ExtractionError("item script returned NoneType")
        worker = self._worker(["python"])

        self.assertEqual(asyncio.run(worker.run()), 1)

    def test_listing_failure_moves_to_next_community(self):
        self._listing("rust", ["r1"])
        responses = {self.extractor.listing_url("python"): [TransportError("timeout")]}
        worker = self._worker(["python", "rust"], responses)

        saved = asyncio.run(worker.run())

        self.assertEqual(saved, 1)
        begins = [m.name for m in self._messages() if isinstance(m, BeginCommunity)]
        self.assertEqual(begins, ["python", "rust"])
        self.assertEqual(worker.communities_done, 2)

    def test_session_lost_abandons_remaining_communities(self):
        self._listing("python", ["p1", "p2"])
        self._listing("rust", ["r1"])
        responses = {self.extractor.item_url("p1"): SessionLostError("invalid session id")}
        worker = self._worker(["python", "rust"], responses)

        saved = asyncio.run(worker.run())

        self.assertEqual(saved, 0)
        self.assertTrue(worker.session_lost)
        transport = self.factory.transports[0]
        self.assertNotIn(self.extractor.listing_url("rust"), transport.visited)
        self.assertNotIn(self.extractor.item_url("p2"), transport.visited)
        self.assertTrue(transport.closed)

    def test_media_fetcher_closed_when_session_lost(self):
        self._listing("python", ["p1"])
        media_fetcher = MediaFetcher("skip")
        media_fetcher.close = AsyncMock()
        responses = {self.extractor.item_url("p1"): SessionLostError("invalid session id")}
        worker = self._worker(["python"], responses, media_fetcher=media_fetcher)

        asyncio.run(worker.run())

        self.assertTrue(worker.session_lost)
        media_fetcher.close.assert_awaited_once()

    def test_media_fetcher_closed_after_scan(self):
        self._listing("python", ["p1"])
        media_fetcher = MediaFetcher("skip")
        media_fetcher.close = AsyncMock()
        worker = self._worker(["python"], media_fetcher=media_fetcher)

        self.assertEqual(asyncio.run(worker.run()), 1)
        media_fetcher.close.assert_awaited_once()

    def test_browser_start_failure_returns_zero(self):
        worker = self._worker(["python"], factory=FakeTransportFactory(fail_for={0}))
        self.assertEqual(asyncio.run(worker.run()), 0)
        self.funnel.send.assert_not_called()

    def test_pagination_follows_next_link_up_to_cap(self):
        page2 = f"{self.extractor.listing_url('python')}?after=t3_p1"
        page3 = f"{self.extractor.listing_url('python')}?after=t3_p2"
        self._listing("python", ["p1"], next_url=page2)
        self._listing("python", ["p2"], next_url=page3, url=page2)
        self._listing("python", ["p3"], url=page3)

        self.config.max_pages = 2
        worker = self._worker(["python"])
        self.assertEqual(asyncio.run(worker.run()), 2)
        self.assertNotIn(page3, self.factory.transports[0].visited)

    def test_pagination_stops_without_next_link(self):
        page2 = f"{self.extractor.listing_url('python')}?after=t3_p1"
        self._listing("python", ["p1"], next_url=page2)
        self._listing("python", ["p2"], url=page2)

        worker = self._worker(["python"])
        self.assertEqual(asyncio.run(worker.run()), 2)

    def test_reply_cap_keeps_first_replies_with_ids(self):
        self.config.max_replies_per_item = 2
        self._listing("python", ["p1"])
        self.extractor.items["p1"] = ItemFields(
            title="hello",
            score=5,
            replies=[ReplyFields(id=""), ReplyFields(id="c1"), ReplyFields(id="c2"), ReplyFields(id="c3")],
        )
        worker = self._worker(["python"])

        asyncio.run(worker.run())

        replies = self._bundles()[0].replies
        self.assertEqual([r.id for r in replies], ["c1", "c2"])
        self.assertTrue(all(r.item_id == "p1" for r in replies))

    def test_created_at_falls_back_to_listing_timestamp(self):
        self._listing("python", ["p1"])
        self.extractor.items["p1"] = ItemFields(title="hello", score=5, reply_count=3, created_at=None)
        worker = self._worker(["python"])

        asyncio.run(worker.run())

        bundle = self._bundles()[0]
        self.assertEqual(bundle.item.created_at, 1000)
        self.assertEqual(bundle.snapshot.created_at, 1000)
        self.assertEqual(bundle.snapshot.score, 5)
        self.assertEqual(bundle.snapshot.reply_count, 3)
        self.assertEqual(bundle.item.url, self.extractor.item_url("p1"))

    def test_item_delay_is_jittered(self):
        self.config.item_delay_sec = 1.0
        self._listing("python", ["p1", "p2", "p3"])
        worker = self._worker(["python"])

        asyncio.run(worker.run())

        delays = [s for s in self.clock.sleeps if s > 0]
        self.assertEqual(len(delays), 3)
        self.assertTrue(all(0.6 <= d <= 1.4 for d in delays))

    def test_saved_items_reported_to_exporter(self):
        exporter = MagicMock()
        self._listing("python", ["p1"])
        worker = self._worker(["python"], prometheus_exporter=exporter)

        asyncio.run(worker.run())

        exporter.record_item_saved.assert_called_once_with("python")


if __name__ == "__main__":
    unittest.main()
