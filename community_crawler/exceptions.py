"""Exception hierarchy for the crawler."""


class CrawlerError(Exception):
    """Base class for crawler errors."""


class TransportError(CrawlerError):
    """A navigation or script evaluation failed; the session is still usable."""


class SessionLostError(TransportError):
    """The browser session was terminated and cannot be used again."""


class ExtractionError(CrawlerError):
    """A rendered page could not be turned into typed fields."""


class ConfigurationError(CrawlerError):
    """Invalid configuration or unreadable input; fatal at startup."""
