"""Prometheus metrics for monitoring the community crawler."""

import logging
import time
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)

# Define metrics
ITEMS_SAVED = Counter(
    "community_crawler_items_saved_total",
    "Total number of items handed to the write funnel",
    ["community"],
)

FETCH_ATTEMPTS = Counter(
    "community_crawler_fetch_attempts_total",
    "Number of page navigation attempts",
)

FETCH_OUTCOMES = Counter(
    "community_crawler_fetch_outcomes_total",
    "Fetch attempts that did not yield a usable page",
    ["outcome"],
)

WRITE_FAILURES = Counter(
    "community_crawler_write_failures_total",
    "Number of write funnel messages that failed to apply",
)

COOLDOWN_REMAINING = Gauge(
    "community_crawler_cooldown_remaining_seconds",
    "Seconds left on the shared rate limit cooldown",
)

ACTIVE_WORKERS = Gauge(
    "community_crawler_active_workers",
    "Number of crawl workers currently running",
)

REQUEST_DURATION = Histogram(
    "community_crawler_request_duration_seconds",
    "Duration of page navigations in seconds",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)


class PrometheusExporter:
    """Prometheus metrics exporter for the community crawler."""

    def __init__(self, port: int = 8000):
        """
        Initialize the Prometheus exporter.

        Args:
            port: Port to expose metrics on
        """
        self.port = port
        self.server_started = False

    def start_server(self) -> None:
        """Start the Prometheus metrics server."""
        if not self.server_started:
            try:
                start_http_server(self.port)
                self.server_started = True
                logger.info(f"Started Prometheus metrics server on port {self.port}")
            except Exception as e:
                logger.error(f"Failed to start Prometheus metrics server: {str(e)}")

    def record_item_saved(self, community: str) -> None:
        ITEMS_SAVED.labels(community=community).inc()

    def record_fetch_attempt(self) -> None:
        FETCH_ATTEMPTS.inc()

    def record_rate_limited(self) -> None:
        FETCH_OUTCOMES.labels(outcome="rate_limited").inc()

    def record_given_up(self) -> None:
        FETCH_OUTCOMES.labels(outcome="given_up").inc()

    def record_write_failure(self) -> None:
        WRITE_FAILURES.inc()

    def set_cooldown_remaining(self, seconds: float) -> None:
        COOLDOWN_REMAINING.set(max(0.0, seconds))

    def set_active_workers(self, count: int) -> None:
        ACTIVE_WORKERS.set(count)

    def time_request(self) -> "RequestTimer":
        """
        Create a context manager for timing page navigations.

        Returns:
            RequestTimer context manager
        """
        return RequestTimer()


class RequestTimer:
    """Context manager for timing page navigations."""

    def __init__(self):
        self.start_time: Optional[float] = None

    def __enter__(self) -> "RequestTimer":
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is not None:
            REQUEST_DURATION.observe(time.time() - self.start_time)
