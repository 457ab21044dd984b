"""create crawl schema

Revision ID: 3f1a9c2d7e10
Revises:
Create Date: 2026-10-17 09:00:00.000000

Communities, current-state items/replies/media, scans, per-scan snapshots and
the derived metric tables.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "3f1a9c2d7e10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "communities",
        sa.Column("id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_communities_name", "communities", ["name"], unique=True)

    op.create_table(
        "items",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("community_id", sa.BigInteger(), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("author", sa.Text(), nullable=True),
        sa.Column("score", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=True, comment="Unix seconds"),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("reply_count", sa.BigInteger(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_items_community_id", "items", ["community_id"])

    op.create_table(
        "replies",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("item_id", sa.Text(), nullable=False),
        sa.Column("parent_ref", sa.Text(), nullable=True),
        sa.Column("author", sa.Text(), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("score", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_replies_item_id", "replies", ["item_id"])

    op.create_table(
        "media",
        sa.Column("item_id", sa.Text(), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("data", sa.Text(), nullable=True, comment="Base64 payload"),
        sa.Column("mime", sa.Text(), nullable=True),
        sa.Column("size_bytes", sa.BigInteger(), nullable=True),
        sa.PrimaryKeyConstraint("item_id", "url"),
    )

    op.create_table(
        "scans",
        sa.Column("id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("started_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "item_snapshots",
        sa.Column("item_id", sa.Text(), nullable=False),
        sa.Column("scan_id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("score", sa.BigInteger(), nullable=True),
        sa.Column("reply_count", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=True),
        sa.PrimaryKeyConstraint("item_id", "scan_id"),
    )
    op.create_index("ix_item_snapshots_scan_id", "item_snapshots", ["scan_id"])

    op.create_table(
        "reply_snapshots",
        sa.Column("reply_id", sa.Text(), nullable=False),
        sa.Column("scan_id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("score", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=True),
        sa.PrimaryKeyConstraint("reply_id", "scan_id"),
    )
    op.create_index("ix_reply_snapshots_scan_id", "reply_snapshots", ["scan_id"])

    op.create_table(
        "item_metrics",
        sa.Column("item_id", sa.Text(), nullable=False),
        sa.Column("scan_id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("score", sa.BigInteger(), nullable=True),
        sa.Column("reply_count", sa.BigInteger(), nullable=True),
        sa.Column("prev_scan_id", sa.BigInteger(), nullable=True),
        sa.Column("prev_score", sa.BigInteger(), nullable=True),
        sa.Column("prev_reply_count", sa.BigInteger(), nullable=True),
        sa.Column("dt_seconds", sa.BigInteger(), nullable=True),
        sa.Column("score_delta", sa.BigInteger(), nullable=True),
        sa.Column("reply_delta", sa.BigInteger(), nullable=True),
        sa.Column("score_velocity_per_hour", sa.Float(), nullable=True),
        sa.Column("reply_velocity_per_hour", sa.Float(), nullable=True),
        sa.Column("virality_score", sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint("item_id", "scan_id"),
    )

    op.create_table(
        "reply_metrics",
        sa.Column("reply_id", sa.Text(), nullable=False),
        sa.Column("scan_id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("item_id", sa.Text(), nullable=False),
        sa.Column("score", sa.BigInteger(), nullable=True),
        sa.Column("prev_scan_id", sa.BigInteger(), nullable=True),
        sa.Column("prev_score", sa.BigInteger(), nullable=True),
        sa.Column("dt_seconds", sa.BigInteger(), nullable=True),
        sa.Column("score_delta", sa.BigInteger(), nullable=True),
        sa.Column("score_velocity_per_hour", sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint("reply_id", "scan_id"),
    )


def downgrade() -> None:
    op.drop_table("reply_metrics")
    op.drop_table("item_metrics")
    op.drop_index("ix_reply_snapshots_scan_id", table_name="reply_snapshots")
    op.drop_table("reply_snapshots")
    op.drop_index("ix_item_snapshots_scan_id", table_name="item_snapshots")
    op.drop_table("item_snapshots")
    op.drop_table("scans")
    op.drop_table("media")
    op.drop_index("ix_replies_item_id", table_name="replies")
    op.drop_table("replies")
    op.drop_index("ix_items_community_id", table_name="items")
    op.drop_table("items")
    op.drop_index("ix_communities_name", table_name="communities")
    op.drop_table("communities")
