"""SQLAlchemy ORM models for crawled entities, snapshots and derived metrics."""

from typing import Optional

from sqlalchemy import BigInteger, Float, Index, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class CommunityORM(Base):
    """A named community; ids are allocated sequentially on first sighting."""
    __tablename__ = "communities"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        Index("ix_communities_name", "name", unique=True),
    )

    def __repr__(self) -> str:
        return f"<CommunityORM(id={self.id}, name='{self.name}')>"


class ItemORM(Base):
    """Current state of an item. Replaced wholesale on every sighting."""
    __tablename__ = "items"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    community_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text)
    author: Mapped[Optional[str]] = mapped_column(Text)
    score: Mapped[Optional[int]] = mapped_column(BigInteger)
    created_at: Mapped[Optional[int]] = mapped_column(BigInteger, comment="Unix seconds")
    body: Mapped[Optional[str]] = mapped_column(Text)
    reply_count: Mapped[Optional[int]] = mapped_column(BigInteger)

    def __repr__(self) -> str:
        return f"<ItemORM(id='{self.id}', community_id={self.community_id}, score={self.score})>"


class ReplyORM(Base):
    """Current state of a reply."""
    __tablename__ = "replies"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    item_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    parent_ref: Mapped[Optional[str]] = mapped_column(Text)
    author: Mapped[Optional[str]] = mapped_column(Text)
    body: Mapped[Optional[str]] = mapped_column(Text)
    score: Mapped[Optional[int]] = mapped_column(BigInteger)
    created_at: Mapped[Optional[int]] = mapped_column(BigInteger)


class MediaORM(Base):
    """Media attached to an item, identified by (item_id, url)."""
    __tablename__ = "media"

    item_id: Mapped[str] = mapped_column(Text, primary_key=True)
    url: Mapped[str] = mapped_column(Text, primary_key=True)
    data: Mapped[Optional[str]] = mapped_column(Text, comment="Base64 payload")
    mime: Mapped[Optional[str]] = mapped_column(Text)
    size_bytes: Mapped[Optional[int]] = mapped_column(BigInteger)


class ScanORM(Base):
    """One crawl run."""
    __tablename__ = "scans"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    started_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


class ItemSnapshotORM(Base):
    """Point-in-time copy of an item's mutable fields, one row per (item, scan)."""
    __tablename__ = "item_snapshots"

    item_id: Mapped[str] = mapped_column(Text, primary_key=True)
    scan_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    score: Mapped[Optional[int]] = mapped_column(BigInteger)
    reply_count: Mapped[Optional[int]] = mapped_column(BigInteger)
    created_at: Mapped[Optional[int]] = mapped_column(BigInteger)

    __table_args__ = (
        Index("ix_item_snapshots_scan_id", "scan_id"),
    )


class ReplySnapshotORM(Base):
    """Point-in-time copy of a reply's mutable fields, one row per (reply, scan)."""
    __tablename__ = "reply_snapshots"

    reply_id: Mapped[str] = mapped_column(Text, primary_key=True)
    scan_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    score: Mapped[Optional[int]] = mapped_column(BigInteger)
    created_at: Mapped[Optional[int]] = mapped_column(BigInteger)

    __table_args__ = (
        Index("ix_reply_snapshots_scan_id", "scan_id"),
    )


class ItemMetricORM(Base):
    """Deltas and velocities of an item between a scan and its previous snapshot."""
    __tablename__ = "item_metrics"

    item_id: Mapped[str] = mapped_column(Text, primary_key=True)
    scan_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    score: Mapped[Optional[int]] = mapped_column(BigInteger)
    reply_count: Mapped[Optional[int]] = mapped_column(BigInteger)
    prev_scan_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    prev_score: Mapped[Optional[int]] = mapped_column(BigInteger)
    prev_reply_count: Mapped[Optional[int]] = mapped_column(BigInteger)
    dt_seconds: Mapped[Optional[int]] = mapped_column(BigInteger)
    score_delta: Mapped[Optional[int]] = mapped_column(BigInteger)
    reply_delta: Mapped[Optional[int]] = mapped_column(BigInteger)
    score_velocity_per_hour: Mapped[Optional[float]] = mapped_column(Float)
    reply_velocity_per_hour: Mapped[Optional[float]] = mapped_column(Float)
    virality_score: Mapped[float] = mapped_column(Float, nullable=False)


class ReplyMetricORM(Base):
    """Deltas and velocity of a reply between a scan and its previous snapshot."""
    __tablename__ = "reply_metrics"

    reply_id: Mapped[str] = mapped_column(Text, primary_key=True)
    scan_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    item_id: Mapped[str] = mapped_column(Text, nullable=False)
    score: Mapped[Optional[int]] = mapped_column(BigInteger)
    prev_scan_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    prev_score: Mapped[Optional[int]] = mapped_column(BigInteger)
    dt_seconds: Mapped[Optional[int]] = mapped_column(BigInteger)
    score_delta: Mapped[Optional[int]] = mapped_column(BigInteger)
    score_velocity_per_hour: Mapped[Optional[float]] = mapped_column(Float)
