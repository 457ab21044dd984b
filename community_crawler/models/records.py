"""Plain record types passed from workers to the storage layer."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class ItemRecord:
    """Latest known state of a crawled item (post)."""

    id: str
    url: str
    title: Optional[str] = None
    author: Optional[str] = None
    score: Optional[int] = None
    created_at: Optional[int] = None  # unix seconds
    body: Optional[str] = None
    reply_count: Optional[int] = None


@dataclass
class ReplyRecord:
    """Latest known state of a reply (comment) attached to an item."""

    id: str
    item_id: str
    parent_ref: Optional[str] = None
    author: Optional[str] = None
    body: Optional[str] = None
    score: Optional[int] = None
    created_at: Optional[int] = None


@dataclass
class MediaRecord:
    """Media referenced by an item, optionally with its embedded payload."""

    url: str
    data: Optional[str] = None  # base64
    mime: Optional[str] = None
    size_bytes: Optional[int] = None


@dataclass
class SnapshotTuple:
    """Mutable item fields captured for one scan."""

    item_id: str
    scan_id: int
    score: Optional[int] = None
    reply_count: Optional[int] = None
    created_at: Optional[int] = None
