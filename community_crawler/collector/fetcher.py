"""Polite navigation with rate-limit detection, shared cooldown and backoff."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Iterator, List, Optional

from community_crawler.collector.rate_gate import RateGate
from community_crawler.config import RateLimitConfig, RetryConfig
from community_crawler.exceptions import SessionLostError, TransportError
from community_crawler.transport.base import RenderedPage, Transport

logger = logging.getLogger(__name__)

RateLimitClassifier = Callable[[RenderedPage], bool]

RATE_LIMIT_TITLE_MARKERS = ("429", "too many requests")
RATE_LIMIT_BODY_MARKERS = ("too many requests", "you've been rate limited", "rate limit exceeded")


def default_rate_limit_classifier(page: RenderedPage) -> bool:
    """Case-insensitive check of the status, title and markup for rate-limit signs."""
    if page.status == 429:
        return True
    title = (page.title or "").lower()
    body = (page.html or "").lower()
    return any(m in title for m in RATE_LIMIT_TITLE_MARKERS) or any(
        m in body for m in RATE_LIMIT_BODY_MARKERS
    )


def backoff_interval(initial: float, maximum: float, attempt_index: int, factor: float = 2.0) -> float:
    """Backoff before retry number ``attempt_index + 1``: initial * factor**i, capped."""
    return min(initial * (factor ** attempt_index), maximum)


def backoff_schedule(initial: float, maximum: float, factor: float = 2.0) -> Iterator[float]:
    """Infinite, jitter-free sequence of backoff intervals."""
    attempt = 0
    while True:
        yield backoff_interval(initial, maximum, attempt, factor)
        attempt += 1


class FetchState(Enum):
    IDLE = "idle"
    RATE_LIMITED = "rate_limited"
    NAVIGATING = "navigating"
    CLASSIFYING = "classifying"
    RETRYING = "retrying"
    DONE = "done"
    GIVEN_UP = "given_up"


@dataclass
class FetchResult:
    """Outcome of one polite navigation. Truthy when the page loaded."""

    url: str
    state: FetchState
    attempts: int
    page: Optional[RenderedPage] = None
    transitions: List[FetchState] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state is FetchState.DONE

    def __bool__(self) -> bool:
        return self.ok


class PoliteFetcher:
    """
    Drive one navigation through the shared ``RateGate`` with retries.

    Each attempt acquires a token, navigates, waits a short settle delay and
    classifies the page. A rate-limited page extends the global cooldown (so
    every worker slows down) and is retried after an exponential backoff.
    Once the overall deadline would be exceeded the backoff drops to the
    fixed ``deadline_backoff_sec``; retries still run up to ``max_attempts``.
    Exhausting the attempts yields a failed ``FetchResult`` rather than an
    exception. ``SessionLostError`` is never retried; it propagates to the
    worker.
    """

    def __init__(
        self,
        rate_gate: RateGate,
        retry: RetryConfig,
        rate_limit: RateLimitConfig,
        classifier: RateLimitClassifier = default_rate_limit_classifier,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        prometheus_exporter=None,
    ):
        self.rate_gate = rate_gate
        self.retry = retry
        self.rate_limit = rate_limit
        self.classifier = classifier
        self._sleep = sleep
        self._clock = clock
        self.prometheus_exporter = prometheus_exporter

    def cooldown_penalty(self, attempt_index: int) -> float:
        return self.rate_limit.cooldown_base_sec + attempt_index * self.rate_limit.cooldown_step_sec

    def next_backoff(self, attempt_index: int, elapsed: float) -> float:
        """Exponential backoff, or the fixed fallback once it would overrun the deadline."""
        backoff = backoff_interval(
            self.retry.initial_backoff_sec,
            self.retry.max_backoff_sec,
            attempt_index,
            self.retry.backoff_factor,
        )
        if elapsed + backoff > self.retry.overall_deadline_sec:
            return self.retry.deadline_backoff_sec
        return backoff

    async def fetch(self, transport: Transport, url: str) -> FetchResult:
        """
        Navigate ``transport`` to ``url`` politely.

        Raises:
            SessionLostError: if the browser session is gone
        """
        started = self._clock()
        verbose = self.retry.verbose
        transitions = [FetchState.IDLE]

        def move(state: FetchState) -> None:
            transitions.append(state)
            logger.debug(f"{url}: {state.value}")

        attempt = 0
        for attempt in range(self.retry.max_attempts):
            if self.rate_gate.cooldown_remaining() > 0:
                move(FetchState.RATE_LIMITED)
            await self.rate_gate.acquire()

            if self.prometheus_exporter:
                self.prometheus_exporter.record_fetch_attempt()
            move(FetchState.NAVIGATING)
            page: Optional[RenderedPage] = None
            rate_limited = False
            try:
                if self.prometheus_exporter:
                    with self.prometheus_exporter.time_request():
                        page = await transport.navigate(url)
                else:
                    page = await transport.navigate(url)
                await self._sleep(self.retry.settle_delay_sec)
            except SessionLostError:
                raise
            except TransportError as e:
                logger.warning(f"Navigation to {url} failed ({attempt + 1}/{self.retry.max_attempts}): {e}")

            if page is not None:
                move(FetchState.CLASSIFYING)
                rate_limited = self.classifier(page)
                if not rate_limited:
                    if verbose and attempt > 0:
                        logger.info(f"[RECOVERED] {url} after attempt {attempt + 1}")
                    move(FetchState.DONE)
                    return FetchResult(url=url, state=FetchState.DONE, attempts=attempt + 1,
                                       page=page, transitions=transitions)

            backoff = self.next_backoff(attempt, self._clock() - started)

            if rate_limited:
                if self.prometheus_exporter:
                    self.prometheus_exporter.record_rate_limited()
                self.rate_gate.extend_cooldown(self.cooldown_penalty(attempt))
                if verbose:
                    logger.info(
                        f"[429] {url} -> backoff {int(backoff * 1000)}ms "
                        f"(attempt {attempt + 1}/{self.retry.max_attempts})"
                    )

            if attempt + 1 >= self.retry.max_attempts:
                break

            move(FetchState.RETRYING)
            await self._sleep(backoff)

        if verbose:
            logger.warning(f"[GAVE UP] {url}")
        if self.prometheus_exporter:
            self.prometheus_exporter.record_given_up()
        move(FetchState.GIVEN_UP)
        return FetchResult(url=url, state=FetchState.GIVEN_UP, attempts=attempt + 1,
                           transitions=transitions)
