"""Single-writer funnel that serializes all storage mutations."""

import logging
import queue
import threading
from typing import Dict, Optional

from community_crawler.models.messages import BeginCommunity, ItemBundle, Shutdown, WriteMessage
from community_crawler.storage.repository import CrawlRepository

logger = logging.getLogger(__name__)


class WriteFunnel:
    """
    Consume write messages from many producers and apply them one at a time.

    Producers (workers and the supervisor) call ``send`` from any thread or
    task; a single consumer thread applies messages in receipt order. A
    failure while applying one message is logged and counted, and the funnel
    moves on to the next message. Persistence is best effort.
    """

    def __init__(self, repository: CrawlRepository, prometheus_exporter=None):
        self.repository = repository
        self.prometheus_exporter = prometheus_exporter
        self._queue: "queue.Queue[WriteMessage]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._closed = threading.Event()
        self.stats: Dict[str, int] = {
            "received": 0,
            "applied": 0,
            "failed": 0,
            "communities": 0,
            "items": 0,
        }

    def start(self) -> None:
        """Start the consumer thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self.run, name="write-funnel", daemon=True)
        self._thread.start()
        logger.info("Write funnel started")

    def send(self, message: WriteMessage) -> bool:
        """
        Enqueue a message for the writer.

        Returns False (and drops the message) once the funnel has been closed;
        senders are not expected to handle this.
        """
        if self._closed.is_set():
            logger.warning(f"Write funnel closed, dropping {type(message).__name__}")
            return False
        self._queue.put(message)
        return True

    def close(self, timeout: Optional[float] = None) -> None:
        """Send the shutdown signal and wait for everything queued before it."""
        if self._closed.is_set():
            return
        self._queue.put(Shutdown())
        self._closed.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.error("Write funnel did not drain within the timeout")
        logger.info(
            f"Write funnel stopped: {self.stats['applied']} applied, "
            f"{self.stats['failed']} failed, {self.stats['items']} items"
        )

    def run(self) -> None:
        """Consumer loop; returns after a Shutdown message."""
        while True:
            message = self._queue.get()
            try:
                if isinstance(message, Shutdown):
                    return
                self.stats["received"] += 1
                self._apply(message)
            finally:
                self._queue.task_done()

    def _apply(self, message: WriteMessage) -> None:
        try:
            if isinstance(message, BeginCommunity):
                self.repository.get_or_create_community(message.name)
                self.stats["communities"] += 1
            elif isinstance(message, ItemBundle):
                self.repository.apply_bundle(message)
                self.stats["items"] += 1
            else:
                raise TypeError(f"Unknown write message: {message!r}")
            self.stats["applied"] += 1
        except Exception as e:
            self.stats["failed"] += 1
            if self.prometheus_exporter:
                self.prometheus_exporter.record_write_failure()
            logger.error(f"Failed to apply {type(message).__name__}: {str(e)}", exc_info=True)
