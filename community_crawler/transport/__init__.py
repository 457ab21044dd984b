"""Browser transport boundary."""
