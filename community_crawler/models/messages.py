"""Messages sent from the supervisor and workers to the write funnel."""

from dataclasses import dataclass, field
from typing import List, Union

from community_crawler.models.records import ItemRecord, MediaRecord, ReplyRecord, SnapshotTuple


@dataclass
class BeginCommunity:
    """Sent before a worker starts crawling a community."""

    name: str


@dataclass
class ItemBundle:
    """Everything persisted for one successfully fetched item."""

    community: str
    item: ItemRecord
    snapshot: SnapshotTuple
    media: List[MediaRecord] = field(default_factory=list)
    replies: List[ReplyRecord] = field(default_factory=list)


@dataclass
class Shutdown:
    """Terminal message; the funnel stops after draining everything before it."""


WriteMessage = Union[BeginCommunity, ItemBundle, Shutdown]
