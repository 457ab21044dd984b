"""Process-wide request budget shared by every worker."""

import asyncio
import logging
import threading
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class RateGate:
    """
    Token bucket limiter plus a global cooldown deadline.

    Tokens replenish continuously at ``requests_per_minute / 60`` per second up
    to ``burst`` tokens. Callers reserve a token under a lock and then sleep
    outside it, so concurrent workers queue up fairly without holding the lock
    while waiting. The cooldown deadline only ever moves forward.

    One instance is created per crawl and handed to every worker.
    """

    def __init__(
        self,
        requests_per_minute: int,
        burst: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        prometheus_exporter=None,
    ):
        """
        Initialize the gate.

        Args:
            requests_per_minute: Global request budget (values below 1 are treated as 1)
            burst: Bucket capacity; defaults to one minute's worth of tokens
            clock: Monotonic time source in seconds
            sleep: Coroutine used for waiting
            prometheus_exporter: Optional Prometheus exporter for metrics
        """
        self.requests_per_minute = max(1, int(requests_per_minute))
        self.rate = self.requests_per_minute / 60.0
        self.capacity = float(burst if burst is not None else self.requests_per_minute)
        self._clock = clock
        self._sleep = sleep
        self.prometheus_exporter = prometheus_exporter

        self._lock = threading.Lock()
        self._tokens = self.capacity
        self._updated = clock()
        self._cooldown_until = 0.0

    async def acquire(self) -> None:
        """Wait for any active cooldown, then for a token. Never fails."""
        await self._wait_for_cooldown()
        wait = self._reserve_token()
        if wait > 0:
            await self._sleep(wait)
        # The cooldown may have been extended by another worker while we waited
        await self._wait_for_cooldown()

    def extend_cooldown(self, seconds: float) -> float:
        """
        Push the cooldown deadline to ``now + seconds`` if that is later.

        Returns:
            The effective deadline after the call
        """
        with self._lock:
            candidate = self._clock() + seconds
            if candidate > self._cooldown_until:
                self._cooldown_until = candidate
                logger.info(f"Global cooldown extended by {seconds:.1f}s")
            deadline = self._cooldown_until

        if self.prometheus_exporter:
            self.prometheus_exporter.set_cooldown_remaining(self.cooldown_remaining())
        return deadline

    @property
    def cooldown_until(self) -> float:
        with self._lock:
            return self._cooldown_until

    def cooldown_remaining(self) -> float:
        with self._lock:
            return max(0.0, self._cooldown_until - self._clock())

    def _reserve_token(self) -> float:
        """Take one token, possibly going into debt, and return how long to wait."""
        with self._lock:
            now = self._clock()
            self._tokens = min(self.capacity, self._tokens + (now - self._updated) * self.rate)
            self._updated = now
            self._tokens -= 1.0
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self.rate

    async def _wait_for_cooldown(self) -> None:
        while True:
            remaining = self.cooldown_remaining()
            if remaining <= 0:
                return
            logger.debug(f"Waiting {remaining:.2f}s for global cooldown")
            await self._sleep(remaining)
