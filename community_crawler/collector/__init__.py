"""Crawl orchestration: rate gate, polite fetcher, workers and the pool."""
