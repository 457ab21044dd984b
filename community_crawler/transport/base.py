"""Capability interface the crawler uses to drive a browser session."""

from dataclasses import dataclass
from typing import Any, Optional, Protocol


@dataclass
class RenderedPage:
    """Result of a navigation."""

    url: str
    title: str = ""
    html: str = ""
    status: Optional[int] = None


class Transport(Protocol):
    """
    One browser session, owned by exactly one worker.

    Implementations raise ``TransportError`` for recoverable failures and
    ``SessionLostError`` once the session can no longer be used.
    """

    async def navigate(self, url: str) -> RenderedPage:
        ...

    async def current_url(self) -> str:
        """Cheap liveness probe; raises ``SessionLostError`` if the session is gone."""
        ...

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        ...

    async def close(self) -> None:
        ...


class TransportFactory(Protocol):
    """Opens a fresh session for a worker."""

    async def open(self, worker_index: int, proxy: Optional[str] = None) -> Transport:
        ...
