"""Interface between the crawler and site-specific page extraction."""

from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from community_crawler.transport.base import Transport


@dataclass
class ListingEntry:
    item_id: str
    url: Optional[str] = None
    created_at: Optional[int] = None


@dataclass
class ReplyFields:
    id: str
    parent_ref: Optional[str] = None
    author: Optional[str] = None
    body: Optional[str] = None
    score: Optional[int] = None
    created_at: Optional[int] = None


@dataclass
class ItemFields:
    title: Optional[str] = None
    author: Optional[str] = None
    score: Optional[int] = None
    created_at: Optional[int] = None
    body: Optional[str] = None
    reply_count: Optional[int] = None
    media_urls: List[str] = field(default_factory=list)
    replies: List[ReplyFields] = field(default_factory=list)


class Extractor(Protocol):
    """
    Turns the page currently loaded in a transport into typed fields.

    Methods raise ``ExtractionError`` when the page does not have the expected
    shape and let ``TransportError`` / ``SessionLostError`` propagate.
    """

    def listing_url(self, community: str) -> str:
        ...

    def item_url(self, item_id: str) -> str:
        ...

    async def listing(self, transport: Transport) -> List[ListingEntry]:
        ...

    async def item(self, transport: Transport) -> ItemFields:
        ...

    async def next_page(self, transport: Transport) -> Optional[str]:
        ...
