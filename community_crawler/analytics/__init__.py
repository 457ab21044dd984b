"""Derived trend metrics."""
