"""Polite concurrent community crawler with snapshot-based trend metrics."""

__version__ = "0.1.0"
