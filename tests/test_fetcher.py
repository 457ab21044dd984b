"""Tests for polite navigation: classification, backoff and cooldown."""

import asyncio
import itertools
import unittest
from unittest.mock import MagicMock

from community_crawler.collector.fetcher import (
    FetchState,
    backoff_interval,
    backoff_schedule,
    default_rate_limit_classifier,
)
from community_crawler.config import RateLimitConfig, RetryConfig
from community_crawler.exceptions import SessionLostError, TransportError
from community_crawler.transport.base import RenderedPage
from tests.fakes import FakeClock, FakeTransport, make_fetcher

URL = "https://site.test/c/python"
THROTTLED = RenderedPage(url=URL, title="429 Too Many Requests", html="", status=200)
FINE = RenderedPage(url=URL, title="python", html="<div id='siteTable'></div>", status=200)


class TestRateLimitClassifier(unittest.TestCase):

    def test_status_code(self):
        self.assertTrue(default_rate_limit_classifier(RenderedPage(url=URL, status=429)))

    def test_title_marker(self):
        self.assertTrue(default_rate_limit_classifier(THROTTLED))

    def test_body_marker_is_case_insensitive(self):
        page = RenderedPage(url=URL, title="reddit", html="<h1>Too Many Requests</h1>")
        self.assertTrue(default_rate_limit_classifier(page))

    def test_normal_page(self):
        self.assertFalse(default_rate_limit_classifier(FINE))


class TestBackoff(unittest.TestCase):

    def test_schedule_doubles_and_caps(self):
        values = list(itertools.islice(backoff_schedule(0.8, 5.0), 5))
        for actual, expected in zip(values, [0.8, 1.6, 3.2, 5.0, 5.0]):
            self.assertAlmostEqual(actual, expected)

    def test_interval(self):
        self.assertAlmostEqual(backoff_interval(0.8, 5.0, 0), 0.8)
        self.assertAlmostEqual(backoff_interval(0.8, 5.0, 10), 5.0)


class TestPoliteFetcher(unittest.TestCase):
    """Test cases for the PoliteFetcher class."""

    def setUp(self):
        self.clock = FakeClock()
        self.exporter = MagicMock()

    def test_success_on_first_attempt(self):
        fetcher = make_fetcher(self.clock, prometheus_exporter=self.exporter)
        transport = FakeTransport({URL: FINE})

        result = asyncio.run(fetcher.fetch(transport, URL))

        self.assertTrue(result)
        self.assertEqual(result.state, FetchState.DONE)
        self.assertEqual(result.attempts, 1)
        self.assertIs(result.page, FINE)
        # Only the settle delay was slept
        self.assertEqual(self.clock.sleeps, [0.3])
        self.exporter.record_fetch_attempt.assert_called_once()
        self.exporter.record_given_up.assert_not_called()

    def test_rate_limited_then_recovered(self):
        fetcher = make_fetcher(self.clock, verbose=True, prometheus_exporter=self.exporter)
        transport = FakeTransport({URL: [THROTTLED, FINE]})

        with self.assertLogs("community_crawler.collector.fetcher", level="INFO") as logs:
            result = asyncio.run(fetcher.fetch(transport, URL))

        self.assertTrue(result)
        self.assertEqual(result.attempts, 2)
        self.assertEqual(transport.visited, [URL, URL])
        self.exporter.record_rate_limited.assert_called_once()
        # The first penalty (20s) was imposed on the shared gate after the first navigation
        self.assertAlmostEqual(fetcher.rate_gate.cooldown_until, 0.3 + 20)
        self.assertGreaterEqual(self.clock.now, 20.3)
        self.assertIn(0.8, self.clock.sleeps)
        self.assertTrue(any("[429]" in line for line in logs.output))
        self.assertTrue(any("[RECOVERED]" in line for line in logs.output))

    def test_gives_up_after_max_attempts(self):
        fetcher = make_fetcher(self.clock, max_attempts=3, prometheus_exporter=self.exporter)
        transport = FakeTransport({URL: [TransportError("net::ERR_CONNECTION_RESET")]})

        result = asyncio.run(fetcher.fetch(transport, URL))

        self.assertFalse(result)
        self.assertEqual(result.state, FetchState.GIVEN_UP)
        self.assertEqual(result.attempts, 3)
        self.assertEqual(len(transport.visited), 3)
        # Backoff between attempts, none after the last one
        self.assertEqual([round(s, 6) for s in self.clock.sleeps], [0.8, 1.6])
        self.exporter.record_given_up.assert_called_once()

    def test_every_rate_limit_extends_cooldown(self):
        fetcher = make_fetcher(self.clock, max_attempts=3,
                               prometheus_exporter=self.exporter)
        transport = FakeTransport({URL: [THROTTLED]})

        result = asyncio.run(fetcher.fetch(transport, URL))

        self.assertFalse(result)
        self.assertEqual(result.attempts, 3)
        self.assertEqual(self.exporter.record_rate_limited.call_count, 3)
        # Last penalty is 20 + 2 * 10 seconds from the third detection
        self.assertAlmostEqual(fetcher.rate_gate.cooldown_until, self.clock.now + 40)

    def test_deadline_falls_back_to_fixed_backoff(self):
        fetcher = make_fetcher(self.clock, max_attempts=5, overall_deadline_sec=2.0)
        transport = FakeTransport({URL: [TransportError("timeout")]})

        result = asyncio.run(fetcher.fetch(transport, URL))

        self.assertFalse(result)
        self.assertEqual(result.attempts, 5)
        # 0.8 fits within 2s, after that every wait is the fixed 1.2s
        self.assertEqual([round(s, 6) for s in self.clock.sleeps], [0.8, 1.2, 1.2, 1.2])

    def test_throttled_pages_use_every_attempt_with_defaults(self):
        fetcher = make_fetcher(self.clock, rpm=RateLimitConfig().requests_per_minute,
                               prometheus_exporter=self.exporter)
        transport = FakeTransport({URL: [THROTTLED]})

        result = asyncio.run(fetcher.fetch(transport, URL))

        self.assertEqual(result.state, FetchState.GIVEN_UP)
        self.assertEqual(result.attempts, RetryConfig().max_attempts)
        self.assertEqual(len(transport.visited), 3)
        self.assertEqual(self.exporter.record_rate_limited.call_count, 3)

    def test_transitions(self):
        fetcher = make_fetcher(self.clock)
        transport = FakeTransport({URL: [THROTTLED, FINE]})

        result = asyncio.run(fetcher.fetch(transport, URL))

        self.assertEqual(result.transitions, [
            FetchState.IDLE,
            FetchState.NAVIGATING,
            FetchState.CLASSIFYING,
            FetchState.RETRYING,
            FetchState.RATE_LIMITED,
            FetchState.NAVIGATING,
            FetchState.CLASSIFYING,
            FetchState.DONE,
        ])

    def test_transport_error_skips_classification(self):
        fetcher = make_fetcher(self.clock, max_attempts=1)
        transport = FakeTransport({URL: TransportError("net::ERR_TIMED_OUT")})

        result = asyncio.run(fetcher.fetch(transport, URL))

        self.assertEqual(result.transitions, [FetchState.IDLE, FetchState.NAVIGATING, FetchState.GIVEN_UP])

    def test_session_lost_propagates(self):
        fetcher = make_fetcher(self.clock)
        transport = FakeTransport({URL: SessionLostError("invalid session id")})

        with self.assertRaises(SessionLostError):
            asyncio.run(fetcher.fetch(transport, URL))
        self.assertEqual(len(transport.visited), 1)

    def test_cooldown_penalty_escalates(self):
        fetcher = make_fetcher(self.clock)
        self.assertEqual(fetcher.cooldown_penalty(0), 20)
        self.assertEqual(fetcher.cooldown_penalty(1), 30)
        self.assertEqual(fetcher.cooldown_penalty(2), 40)


if __name__ == "__main__":
    unittest.main()
