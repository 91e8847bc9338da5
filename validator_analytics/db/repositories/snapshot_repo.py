"""
Repository for published score snapshots and their rankings.

A snapshot is the unit of publication: every composite score and every
category ranking of one scoring cycle. ``publish_snapshot`` writes the whole
thing inside the caller's transaction and flips ``status`` to ``'published'``
last, so readers of ``get_latest_snapshot_id`` only ever see complete
snapshots. A failed cycle rolls back and the previous snapshot stays current.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Optional

from validator_analytics.db.repositories.base import BaseRepository
from validator_analytics.models.ranking import Ranking, RankingEntry
from validator_analytics.models.score import CompositeScore
from validator_analytics.utils.time_utils import parse_iso, to_iso

logger = logging.getLogger(__name__)


class ScoreSnapshotRepository(BaseRepository):
    """Read/write access to ``score_snapshots``, ``validator_scores`` and ``ranking_entries``."""

    def publish_snapshot(
        self,
        scores: list[CompositeScore],
        rankings: dict[str, Ranking],
        generated_at: datetime,
        run_id: Optional[int] = None,
    ) -> int:
        """Write a complete snapshot and mark it published. Returns ``snapshot_id``.

        The caller owns the transaction; nothing is visible to other
        connections until it commits.
        """
        category_weights = {name: r.weights for name, r in rankings.items()}
        self.execute(
            """
            INSERT INTO score_snapshots (run_id, generated_at, validator_count, category_weights, status)
            VALUES (?, ?, ?, ?, 'pending');
            """,
            (run_id, to_iso(generated_at), len(scores), json.dumps(category_weights)),
        )
        snapshot_id = self.last_insert_rowid()

        self.executemany(
            """
            INSERT INTO validator_scores (
                snapshot_id, validator_id, composite_score, confidence_level,
                grade, insufficient_data, payload
            ) VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            [
                (
                    snapshot_id, s.validator_id, s.composite_score, s.confidence_level,
                    s.grade, int(s.insufficient_data), s.model_dump_json(),
                )
                for s in scores
            ],
        )

        entry_rows = []
        for category, ranking in rankings.items():
            for e in ranking.entries:
                entry_rows.append((
                    snapshot_id, category, e.rank, e.validator_id,
                    e.composite_score, e.grade, e.model_dump_json(),
                ))
        self.executemany(
            """
            INSERT INTO ranking_entries (
                snapshot_id, category, rank, validator_id, composite_score, grade, payload
            ) VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            entry_rows,
        )

        self.execute(
            "UPDATE score_snapshots SET status = 'published' WHERE snapshot_id = ?;",
            (snapshot_id,),
        )
        logger.debug(
            "Snapshot %d written: %d scores, %d ranking entries",
            snapshot_id, len(scores), len(entry_rows),
        )
        return snapshot_id

    def get_latest_snapshot_id(self) -> Optional[int]:
        value = self.fetchvalue(
            """
            SELECT snapshot_id FROM score_snapshots
            WHERE status = 'published'
            ORDER BY snapshot_id DESC LIMIT 1;
            """
        )
        return int(value) if value is not None else None

    def get_snapshot_generated_at(self, snapshot_id: int) -> Optional[datetime]:
        value = self.fetchvalue(
            "SELECT generated_at FROM score_snapshots WHERE snapshot_id = ?;",
            (snapshot_id,),
        )
        return parse_iso(value) if value else None

    def get_scores(self, snapshot_id: int) -> list[CompositeScore]:
        rows = self.fetchall(
            """
            SELECT payload FROM validator_scores
            WHERE snapshot_id = ?
            ORDER BY validator_id;
            """,
            (snapshot_id,),
        )
        return [CompositeScore.model_validate_json(r["payload"]) for r in rows]

    def get_score(self, snapshot_id: int, validator_id: str) -> Optional[CompositeScore]:
        row = self.fetchone(
            "SELECT payload FROM validator_scores WHERE snapshot_id = ? AND validator_id = ?;",
            (snapshot_id, validator_id),
        )
        return CompositeScore.model_validate_json(row["payload"]) if row else None

    def list_categories(self, snapshot_id: int) -> list[str]:
        rows = self.fetchall(
            "SELECT DISTINCT category FROM ranking_entries WHERE snapshot_id = ? ORDER BY category;",
            (snapshot_id,),
        )
        return [r["category"] for r in rows]

    def get_ranking(self, snapshot_id: int, category: str) -> Optional[Ranking]:
        """Rebuild a stored ranking, or ``None`` if the snapshot lacks the category."""
        meta = self.fetchone(
            "SELECT generated_at, category_weights FROM score_snapshots WHERE snapshot_id = ?;",
            (snapshot_id,),
        )
        if meta is None:
            return None
        weights_by_category = json.loads(meta["category_weights"])
        if category not in weights_by_category:
            return None

        rows = self.fetchall(
            """
            SELECT payload FROM ranking_entries
            WHERE snapshot_id = ? AND category = ?
            ORDER BY rank;
            """,
            (snapshot_id, category),
        )
        return Ranking(
            category=category,
            entries=[RankingEntry.model_validate_json(r["payload"]) for r in rows],
            weights=weights_by_category[category],
            generated_at=parse_iso(meta["generated_at"]),
            snapshot_id=snapshot_id,
        )

    def prune_snapshots(self, keep: int = 5) -> int:
        """Delete all but the newest ``keep`` published snapshots. Returns rows deleted."""
        cursor = self.execute(
            """
            DELETE FROM score_snapshots
            WHERE snapshot_id NOT IN (
                SELECT snapshot_id FROM score_snapshots
                WHERE status = 'published'
                ORDER BY snapshot_id DESC LIMIT ?
            );
            """,
            (keep,),
        )
        return cursor.rowcount
