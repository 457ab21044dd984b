"""Full scans through run_crawl with a fake browser and a SQLite file."""

import asyncio
import os
import tempfile
import unittest

from sqlalchemy import func, select

from community_crawler.crawl import run_crawl
from community_crawler.exceptions import ConfigurationError
from community_crawler.extraction.base import ItemFields
from community_crawler.models.orm import (
    CommunityORM,
    ItemMetricORM,
    ItemORM,
    ItemSnapshotORM,
    ScanORM,
)
from community_crawler.storage.database import Database
from tests.fakes import FakeTransportFactory, make_config, one_item_site


class TestEndToEnd(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.database = Database(f"sqlite:///{os.path.join(self.temp_dir.name, 'crawl.db')}")
        self.communities = ["python", "rust", "golang"]

    def tearDown(self):
        self.database.dispose()
        self.temp_dir.cleanup()

    def _count(self, model, **filters):
        with self.database.get_db() as db:
            query = select(func.count()).select_from(model)
            for column, value in filters.items():
                query = query.where(getattr(model, column) == value)
            return db.execute(query).scalar()

    def _crawl(self, extractor, **overrides):
        settings = {"communities": self.communities, "workers": 1, "max_pages": 1}
        settings.update(overrides)
        config = make_config(**settings)
        return asyncio.run(run_crawl(
            config,
            transport_factory=FakeTransportFactory(),
            extractor=extractor,
            database=self.database,
        ))

    def test_single_worker_scan(self):
        result = self._crawl(one_item_site(self.communities))

        self.assertEqual(result.saved, 3)
        self.assertEqual(self._count(ScanORM), 1)
        self.assertEqual(self._count(ItemORM), 3)
        self.assertEqual(self._count(ItemSnapshotORM, scan_id=result.scan_id), 3)
        self.assertEqual(self._count(ItemSnapshotORM), 3)
        self.assertEqual(self._count(CommunityORM), 3)
        # First-seen items get metric rows with an empty baseline
        self.assertEqual(result.metrics.item_rows, 3)

    def test_second_scan_produces_velocities(self):
        extractor = one_item_site(self.communities)
        first = self._crawl(extractor)

        for name in self.communities:
            extractor.items[f"{name}-1"] = ItemFields(title=name, score=40, reply_count=0,
                                                      created_at=1_700_003_600)
        second = self._crawl(extractor)

        self.assertGreater(second.scan_id, first.scan_id)
        self.assertEqual(self._count(ItemORM), 3)
        self.assertEqual(self._count(ItemSnapshotORM), 6)
        with self.database.get_db() as db:
            rows = db.execute(
                select(ItemMetricORM).where(ItemMetricORM.scan_id == second.scan_id)
            ).scalars().all()
        self.assertEqual(len(rows), 3)
        self.assertTrue(all(r.prev_scan_id == first.scan_id for r in rows))
        self.assertTrue(all(r.dt_seconds == 3600 for r in rows))

    def test_multiple_workers(self):
        result = self._crawl(one_item_site(self.communities), workers=3)
        self.assertEqual(result.saved, 3)
        self.assertEqual(self._count(ItemORM), 3)

    def test_empty_community_list_is_fatal(self):
        config = make_config(communities=[], communities_path=None)
        with self.assertRaises(ConfigurationError):
            asyncio.run(run_crawl(config, transport_factory=FakeTransportFactory(),
                                  extractor=one_item_site([]), database=self.database))
        self.database.create_schema()
        self.assertEqual(self._count(ScanORM), 0)


if __name__ == "__main__":
    unittest.main()
