"""Supervisor for a single scan: set up shared state, run workers, derive metrics."""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

from community_crawler.analytics.metrics_engine import MetricsEngine, MetricsSummary
from community_crawler.collector.fetcher import PoliteFetcher
from community_crawler.collector.pool import WorkerPool
from community_crawler.collector.rate_gate import RateGate
from community_crawler.communities import load_communities
from community_crawler.config import Config
from community_crawler.exceptions import ConfigurationError
from community_crawler.extraction.base import Extractor
from community_crawler.extraction.old_reddit import OldRedditExtractor
from community_crawler.storage.database import Database
from community_crawler.storage.repository import CrawlRepository
from community_crawler.storage.write_funnel import WriteFunnel
from community_crawler.transport.base import TransportFactory

logger = logging.getLogger(__name__)


@dataclass
class CrawlResult:
    scan_id: int
    saved: int
    communities: int
    elapsed_sec: float
    metrics: Optional[MetricsSummary] = None


def resolve_communities(config: Config) -> List[str]:
    """Inline names win over the community file. An empty result is fatal."""
    if config.communities:
        names = [name for name in config.communities if name]
    elif config.communities_path:
        names = load_communities(config.communities_path)
    else:
        names = []
    if not names:
        raise ConfigurationError("No communities to crawl")
    return names


async def run_crawl(
    config: Config,
    transport_factory: Optional[TransportFactory] = None,
    extractor: Optional[Extractor] = None,
    database: Optional[Database] = None,
    prometheus_exporter=None,
) -> CrawlResult:
    """
    Run one complete scan.

    The phases are strictly ordered: a Scan row is created, all workers run to
    completion, the write funnel is drained and closed, and only then are the
    derived metrics for the scan computed.

    Raises:
        ConfigurationError: Invalid configuration or empty community source
    """
    errors = config.validate()
    if errors:
        raise ConfigurationError("; ".join(errors))

    communities = resolve_communities(config)

    if transport_factory is None:
        from community_crawler.transport.playwright_transport import PlaywrightTransportFactory

        transport_factory = PlaywrightTransportFactory(config.browser)
    if extractor is None:
        extractor = OldRedditExtractor(config.base_url, config.listing_path)

    owns_database = database is None
    if database is None:
        database = Database(config.database_url)
    database.create_schema()

    started = time.monotonic()
    repository = CrawlRepository(database)
    scan_id = repository.start_scan()
    logger.info(f"Scan {scan_id}: {len(communities)} communities, {config.workers} workers")

    rate_gate = RateGate(
        config.rate_limit.requests_per_minute,
        prometheus_exporter=prometheus_exporter,
    )
    fetcher = PoliteFetcher(
        rate_gate,
        config.retry,
        config.rate_limit,
        prometheus_exporter=prometheus_exporter,
    )
    funnel = WriteFunnel(repository, prometheus_exporter=prometheus_exporter)
    funnel.start()

    try:
        pool = WorkerPool(
            config,
            fetcher,
            transport_factory,
            extractor,
            funnel,
            scan_id,
            prometheus_exporter=prometheus_exporter,
        )
        saved = await pool.run(communities)
    finally:
        # Every queued write lands before metrics read the snapshots
        funnel.close()

    try:
        metrics = MetricsEngine(database, config.metrics.include_first_seen).compute(scan_id)
    finally:
        if owns_database:
            database.dispose()

    elapsed = time.monotonic() - started
    logger.info(f"Scan {scan_id} finished: {saved} items saved in {elapsed:.0f}s")
    return CrawlResult(
        scan_id=scan_id,
        saved=saved,
        communities=len(communities),
        elapsed_sec=elapsed,
        metrics=metrics,
    )
