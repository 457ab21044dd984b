"""
Storage operations for crawl data.

Every current-state table uses delete-then-insert upserts so that the latest
sighting always wins and at most one row exists per identity. Snapshot tables
keep one row per (entity, scan). Nothing here takes locks; callers must make
sure only one writer uses a repository at a time (see ``WriteFunnel``).
"""

import logging
import time
from dataclasses import asdict
from typing import Optional

from sqlalchemy import delete, func, insert, select
from sqlalchemy.orm import Session

from community_crawler.models.messages import ItemBundle
from community_crawler.models.orm import (
    CommunityORM,
    ItemORM,
    ItemSnapshotORM,
    MediaORM,
    ReplyORM,
    ReplySnapshotORM,
    ScanORM,
)
from community_crawler.models.records import ItemRecord, MediaRecord, ReplyRecord, SnapshotTuple
from community_crawler.storage.database import Database

logger = logging.getLogger(__name__)


class CrawlRepository:
    """Single-writer access to the crawl tables."""

    def __init__(self, database: Database):
        self.database = database

    def start_scan(self, now: Optional[int] = None) -> int:
        """
        Register a new scan and return its id.

        The id is the wall-clock second the scan started. If an earlier scan
        already used that second (or a later one, after a clock step back) the
        id is bumped past the current maximum so ids stay unique and increasing.
        """
        started_at = int(time.time()) if now is None else int(now)
        with self.database.get_db() as db:
            latest = db.execute(select(func.max(ScanORM.id))).scalar()
            scan_id = started_at if latest is None or started_at > latest else latest + 1
            db.execute(insert(ScanORM).values(id=scan_id, started_at=started_at))
            db.commit()
        logger.info(f"Started scan {scan_id}")
        return scan_id

    def latest_scan_id(self) -> Optional[int]:
        with self.database.get_db() as db:
            return db.execute(select(func.max(ScanORM.id))).scalar()

    def get_or_create_community(self, name: str) -> int:
        with self.database.get_db() as db:
            community_id = self._get_or_create_community(db, name)
            db.commit()
            return community_id

    def apply_bundle(self, bundle: ItemBundle) -> None:
        """Persist one item bundle in a single transaction."""
        with self.database.get_db() as db:
            try:
                community_id = self._get_or_create_community(db, bundle.community)
                self._upsert_item(db, bundle.item, community_id)
                for media in bundle.media:
                    self._upsert_media(db, bundle.item.id, media)
                for reply in bundle.replies:
                    self._upsert_reply(db, reply)
                    self._snapshot_reply(db, reply, bundle.snapshot.scan_id)
                self._snapshot_item(db, bundle.snapshot)
                db.commit()
            except Exception:
                db.rollback()
                raise

    @staticmethod
    def _get_or_create_community(db: Session, name: str) -> int:
        existing = db.execute(
            select(CommunityORM.id).where(CommunityORM.name == name).limit(1)
        ).scalar()
        if existing is not None:
            return existing

        new_id = db.execute(select(func.coalesce(func.max(CommunityORM.id) + 1, 1))).scalar()
        db.execute(insert(CommunityORM).values(id=new_id, name=name))
        logger.debug(f"Registered community {name} as {new_id}")
        return new_id

    @staticmethod
    def _upsert_item(db: Session, item: ItemRecord, community_id: int) -> None:
        db.execute(delete(ItemORM).where(ItemORM.id == item.id))
        db.execute(insert(ItemORM).values(community_id=community_id, **asdict(item)))

    @staticmethod
    def _upsert_media(db: Session, item_id: str, media: MediaRecord) -> None:
        db.execute(
            delete(MediaORM).where(MediaORM.item_id == item_id, MediaORM.url == media.url)
        )
        db.execute(insert(MediaORM).values(item_id=item_id, **asdict(media)))

    @staticmethod
    def _upsert_reply(db: Session, reply: ReplyRecord) -> None:
        db.execute(delete(ReplyORM).where(ReplyORM.id == reply.id))
        db.execute(insert(ReplyORM).values(**asdict(reply)))

    @staticmethod
    def _snapshot_reply(db: Session, reply: ReplyRecord, scan_id: int) -> None:
        db.execute(
            delete(ReplySnapshotORM).where(
                ReplySnapshotORM.reply_id == reply.id, ReplySnapshotORM.scan_id == scan_id
            )
        )
        db.execute(
            insert(ReplySnapshotORM).values(
                reply_id=reply.id, scan_id=scan_id, score=reply.score, created_at=reply.created_at
            )
        )

    @staticmethod
    def _snapshot_item(db: Session, snapshot: SnapshotTuple) -> None:
        db.execute(
            delete(ItemSnapshotORM).where(
                ItemSnapshotORM.item_id == snapshot.item_id,
                ItemSnapshotORM.scan_id == snapshot.scan_id,
            )
        )
        db.execute(insert(ItemSnapshotORM).values(**asdict(snapshot)))
