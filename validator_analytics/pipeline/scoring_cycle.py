"""
ScoringCycleStage: the scheduled batch that produces a published snapshot.

Cycle flow
----------
1. List every validator and gather feature vectors on the bounded worker pool.
2. Load the market commission distribution once; attach a market comparison
   and a monthly commission trend to each fully-gathered validator.
3. Score every validator (full path, or the insufficient-data fallback).
4. Build every category ranking from the complete score set.
5. Publish scores + rankings as one snapshot inside a single transaction,
   then prune old snapshots.

Failure semantics
-----------------
Any exception (storage outage, malformed config weights) aborts the cycle
before step 5 commits, so no partial snapshot is ever visible and readers keep
getting the last published one. An empty validator table publishes nothing
and marks the run ``skipped``.

Returns the number of validators scored.
"""

from __future__ import annotations

import logging
from typing import Optional

from validator_analytics.db.repositories.snapshot_repo import ScoreSnapshotRepository
from validator_analytics.features.gatherer import DataGatherer
from validator_analytics.models.features import EpochWindow, InsufficientData
from validator_analytics.models.meta import RunMetadata
from validator_analytics.models.score import CompositeScore
from validator_analytics.pipeline.base import PipelineStage
from validator_analytics.ranking.ranker import build_category_rankings
from validator_analytics.scoring.scorer import score_validator
from validator_analytics.utils.logging import run_fields
from validator_analytics.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class ScoringCycleStage(PipelineStage):
    """Gather → score → rank → publish, all or nothing."""

    stage_name = "scoring_cycle"

    def _execute(
        self,
        run: RunMetadata,
        window: Optional[EpochWindow] = None,
        **kwargs,
    ) -> int:
        """Run one scoring cycle.

        Args:
            run:    In-progress RunMetadata (mutable).
            window: Optional epoch window; defaults to the latest epochs.

        Returns:
            Number of validators scored (0 if nothing was published).
        """
        cfg = self.config
        self._persist_run(run)

        gatherer = DataGatherer(self.db, cfg.gathering)
        validator_ids = gatherer.list_validator_ids()
        if not validator_ids:
            logger.warning(
                "No validators in storage; keeping the previous snapshot",
                extra=run_fields(run),
            )
            run.status = "skipped"
            return 0

        gathered = gatherer.gather_many(validator_ids, window)
        market = gatherer.load_market_distribution()

        scores: list[CompositeScore] = []
        for item in gathered:
            if isinstance(item, InsufficientData):
                scores.append(
                    score_validator(item, cfg.scoring, cfg.gathering.min_epochs)
                )
                continue
            comparison = (
                gatherer.get_market_comparison(item, market) if market is not None else None
            )
            trend = gatherer.analyze_trends(item.validator_id)
            scores.append(
                score_validator(
                    item,
                    cfg.scoring,
                    cfg.gathering.min_epochs,
                    market_comparison=comparison,
                    trend_analysis=trend,
                )
            )

        insufficient = sum(1 for s in scores if s.insufficient_data)
        logger.info(
            "Scored %d validators (%d with insufficient data)", len(scores), insufficient,
            extra=run_fields(run),
        )

        generated_at = utcnow()
        rankings = build_category_rankings(
            scores, cfg.ranking, cfg.scoring.weights.as_dict(), generated_at
        )

        with self.db.session("publish score snapshot") as conn:
            repo = ScoreSnapshotRepository(conn)
            run.snapshot_id = repo.publish_snapshot(
                scores, rankings, generated_at, run_id=run.run_id
            )
            pruned = repo.prune_snapshots(keep=cfg.scheduler.keep_snapshots)

        logger.info(
            "Published snapshot %d with %d rankings (pruned %d old snapshots)",
            run.snapshot_id, len(rankings), pruned,
            extra=run_fields(run),
        )
        return len(scores)
