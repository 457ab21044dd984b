"""Static partitioning of communities across concurrent workers."""

import asyncio
import logging
import random
from typing import List, Optional

from community_crawler.collector.fetcher import PoliteFetcher
from community_crawler.collector.worker import Worker
from community_crawler.config import Config
from community_crawler.extraction.base import Extractor
from community_crawler.storage.write_funnel import WriteFunnel
from community_crawler.transport.base import TransportFactory

logger = logging.getLogger(__name__)


def partition_communities(communities: List[str], workers: int, seed: int) -> List[List[str]]:
    """
    Shuffle with a fixed seed and cut into ``workers`` contiguous slices.

    Slices have ceil(len / workers) entries except the tail, which may be
    shorter or empty. Every community lands in exactly one slice.
    """
    if workers <= 0:
        raise ValueError("workers must be greater than 0")
    order = list(communities)
    random.Random(seed).shuffle(order)
    per_worker = -(-len(order) // workers)
    return [order[w * per_worker:(w + 1) * per_worker] for w in range(workers)]


def assign_proxy(proxies: List[str], worker_index: int) -> Optional[str]:
    """Round-robin proxy for a worker, or None when no proxies are configured."""
    if not proxies:
        return None
    return proxies[worker_index % len(proxies)]


class WorkerPool:
    """Launch one worker per non-empty slice and sum their saved-item counts."""

    def __init__(
        self,
        config: Config,
        fetcher: PoliteFetcher,
        transport_factory: TransportFactory,
        extractor: Extractor,
        funnel: WriteFunnel,
        scan_id: int,
        prometheus_exporter=None,
    ):
        self.config = config
        self.fetcher = fetcher
        self.transport_factory = transport_factory
        self.extractor = extractor
        self.funnel = funnel
        self.scan_id = scan_id
        self.prometheus_exporter = prometheus_exporter
        self.workers: List[Worker] = []

    def build_workers(self, communities: List[str]) -> List[Worker]:
        slices = partition_communities(communities, self.config.workers, self.config.shuffle_seed)
        workers = []
        for index, assigned in enumerate(slices):
            if not assigned:
                continue
            workers.append(
                Worker(
                    index=index,
                    communities=assigned,
                    transport_factory=self.transport_factory,
                    fetcher=self.fetcher,
                    extractor=self.extractor,
                    funnel=self.funnel,
                    scan_id=self.scan_id,
                    config=self.config,
                    proxy=assign_proxy(self.config.browser.proxies, index),
                    prometheus_exporter=self.prometheus_exporter,
                )
            )
        return workers

    async def run(self, communities: List[str]) -> int:
        """
        Crawl ``communities`` with all workers concurrently.

        A failing worker never cancels the others; its items saved before the
        failure still count.
        """
        self.workers = self.build_workers(communities)
        logger.info(f"Launching {len(self.workers)} workers for {len(communities)} communities")
        if self.prometheus_exporter:
            self.prometheus_exporter.set_active_workers(len(self.workers))

        results = await asyncio.gather(*(w.run() for w in self.workers), return_exceptions=True)

        total = 0
        for worker, result in zip(self.workers, results):
            if isinstance(result, BaseException):
                logger.error(f"[worker {worker.index}] crashed: {result!r}")
                total += worker.saved
            else:
                total += result

        if self.prometheus_exporter:
            self.prometheus_exporter.set_active_workers(0)
        logger.info(f"All workers finished, {total} items saved")
        return total
