"""Persistence: database, repository and the single-writer funnel."""
