"""
Derived trend metrics computed from snapshots after a scan completes.

For every snapshot of the scan, the most recent snapshot of the same entity
from a strictly earlier scan is the baseline. Elapsed time is the difference
between the two snapshots' ``created_at`` values, not between scan times.
Velocities are per hour and undefined (NULL) unless elapsed time is positive.
The item virality score is ``0.6 * score velocity + 0.4 * reply velocity``
with undefined terms counted as zero.

Computation is idempotent per scan: rows for the scan are deleted first.
"""

import logging
from dataclasses import dataclass
from typing import List

from sqlalchemy import delete, select, text

from community_crawler.models.orm import ItemMetricORM, ReplyMetricORM
from community_crawler.storage.database import Database

logger = logging.getLogger(__name__)

SCORE_WEIGHT = 0.6
REPLY_WEIGHT = 0.4

_ITEM_METRICS_SQL = """
INSERT INTO item_metrics (
    item_id, scan_id, score, reply_count,
    prev_scan_id, prev_score, prev_reply_count,
    dt_seconds, score_delta, reply_delta,
    score_velocity_per_hour, reply_velocity_per_hour, virality_score
)
SELECT
    d.item_id, d.scan_id, d.score, d.reply_count,
    d.prev_scan_id, d.prev_score, d.prev_reply_count,
    d.dt_seconds,
    d.score - d.prev_score,
    d.reply_count - d.prev_reply_count,
    CASE WHEN d.dt_seconds > 0 THEN (d.score - d.prev_score) * 3600.0 / d.dt_seconds END,
    CASE WHEN d.dt_seconds > 0 THEN (d.reply_count - d.prev_reply_count) * 3600.0 / d.dt_seconds END,
    COALESCE(CASE WHEN d.dt_seconds > 0 THEN (d.score - d.prev_score) * 3600.0 / d.dt_seconds END, 0) * :score_weight
      + COALESCE(CASE WHEN d.dt_seconds > 0 THEN (d.reply_count - d.prev_reply_count) * 3600.0 / d.dt_seconds END, 0) * :reply_weight
FROM (
    SELECT
        s.item_id, s.scan_id, s.score, s.reply_count,
        p.scan_id AS prev_scan_id,
        p.score AS prev_score,
        p.reply_count AS prev_reply_count,
        s.created_at - p.created_at AS dt_seconds
    FROM item_snapshots s
    LEFT JOIN item_snapshots p
      ON p.item_id = s.item_id
     AND p.scan_id = (
            SELECT MAX(q.scan_id) FROM item_snapshots q
            WHERE q.item_id = s.item_id AND q.scan_id < s.scan_id
         )
    WHERE s.scan_id = :scan_id
) d
{where}
"""

_REPLY_METRICS_SQL = """
INSERT INTO reply_metrics (
    reply_id, scan_id, item_id, score,
    prev_scan_id, prev_score, dt_seconds, score_delta, score_velocity_per_hour
)
SELECT
    d.reply_id, d.scan_id, d.item_id, d.score,
    d.prev_scan_id, d.prev_score, d.dt_seconds,
    d.score - d.prev_score,
    CASE WHEN d.dt_seconds > 0 THEN (d.score - d.prev_score) * 3600.0 / d.dt_seconds END
FROM (
    SELECT
        s.reply_id, s.scan_id, r.item_id, s.score,
        p.scan_id AS prev_scan_id,
        p.score AS prev_score,
        s.created_at - p.created_at AS dt_seconds
    FROM reply_snapshots s
    JOIN replies r ON r.id = s.reply_id
    LEFT JOIN reply_snapshots p
      ON p.reply_id = s.reply_id
     AND p.scan_id = (
            SELECT MAX(q.scan_id) FROM reply_snapshots q
            WHERE q.reply_id = s.reply_id AND q.scan_id < s.scan_id
         )
    WHERE s.scan_id = :scan_id
) d
{where}
"""

_BASELINE_ONLY = "WHERE d.prev_scan_id IS NOT NULL"


@dataclass
class MetricsSummary:
    scan_id: int
    item_rows: int
    reply_rows: int


class MetricsEngine:
    """Compute item and reply metrics for one completed scan."""

    def __init__(self, database: Database, include_first_seen: bool = True):
        """
        Args:
            database: Crawl database
            include_first_seen: Emit rows with an empty baseline for entities
                that have no earlier snapshot; when False they are omitted
        """
        self.database = database
        self.include_first_seen = include_first_seen

    def compute(self, scan_id: int) -> MetricsSummary:
        """Replace all metric rows of ``scan_id``. Call only after the scan's writes finished."""
        where = "" if self.include_first_seen else _BASELINE_ONLY
        with self.database.get_db() as db:
            try:
                db.execute(delete(ItemMetricORM).where(ItemMetricORM.scan_id == scan_id))
                db.execute(delete(ReplyMetricORM).where(ReplyMetricORM.scan_id == scan_id))

                logger.info(f"[METRICS] Computing item metrics for scan {scan_id}")
                item_rows = db.execute(
                    text(_ITEM_METRICS_SQL.format(where=where)),
                    {"scan_id": scan_id, "score_weight": SCORE_WEIGHT, "reply_weight": REPLY_WEIGHT},
                ).rowcount

                logger.info(f"[METRICS] Computing reply metrics for scan {scan_id}")
                reply_rows = db.execute(
                    text(_REPLY_METRICS_SQL.format(where=where)), {"scan_id": scan_id}
                ).rowcount

                db.commit()
            except Exception:
                db.rollback()
                raise

        logger.info(f"[METRICS] Scan {scan_id}: {item_rows} item rows, {reply_rows} reply rows")
        return MetricsSummary(scan_id=scan_id, item_rows=item_rows, reply_rows=reply_rows)

    def top_items(self, scan_id: int, limit: int = 10) -> List[ItemMetricORM]:
        """Items of a scan ordered by virality, highest first."""
        with self.database.get_db() as db:
            rows = db.execute(
                select(ItemMetricORM)
                .where(ItemMetricORM.scan_id == scan_id)
                .order_by(ItemMetricORM.virality_score.desc())
                .limit(limit)
            ).scalars().all()
            db.expunge_all()
            return list(rows)
