"""Project-level pytest configuration and shared fixtures."""

import pytest

CRAWLER_ENV_VARS = (
    "CRAWLER_DATABASE_URL",
    "CRAWLER_PROXIES_FILE",
    "CRAWLER_WORKERS",
    "CRAWLER_RPM",
)


@pytest.fixture(autouse=True)
def _isolate_crawler_env(monkeypatch):
    """Keep a developer's CRAWLER_* overrides from leaking into config tests."""
    for name in CRAWLER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
