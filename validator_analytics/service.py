"""
Read-side facade used by the CLI and any host application.

All reads go against the latest *published* score snapshot, so callers never
see a half-written scoring cycle. Recommendation calls are delegated to one
long-lived ``RecommendationEngine`` whose cache lives as long as the service.

Operations
----------
get_validator_rankings(category, limit, filters)
get_validator_score_breakdown(validator_id)
get_cohort_comparison(min_sample_size)
get_personalized_recommendations(user_id, options)
clear_user_cache(user_id)
get_cache_stats()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from validator_analytics.analysis.comparison import perform_comparison
from validator_analytics.config import AppConfig
from validator_analytics.db.database import Database
from validator_analytics.db.repositories.snapshot_repo import ScoreSnapshotRepository
from validator_analytics.errors import ValidationError
from validator_analytics.models.comparison import CohortComparison
from validator_analytics.models.ranking import RankingEntry, RankingFilters
from validator_analytics.models.recommendation import (
    RecommendationOptions,
    RecommendationResult,
)
from validator_analytics.models.score import CompositeScore
from validator_analytics.ranking.ranker import filter_ranking
from validator_analytics.recommendations.engine import RecommendationEngine
from validator_analytics.recommendations.store import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankingPage:
    """A filtered ranking view plus the snapshot it came from."""

    category: str
    entries: list[RankingEntry]
    total_validators: int
    snapshot_id: Optional[int]
    generated_at: Optional[datetime]


class ValidatorAnalyticsService:
    """Entry point for every read-side operation.

    Args:
        config: Application configuration.
        db: Storage handle (defaults to one built from ``config.database``).
        engine: Injected recommendation engine (tests); built if omitted.
    """

    def __init__(
        self,
        config: AppConfig,
        db: Optional[Database] = None,
        engine: Optional[RecommendationEngine] = None,
    ) -> None:
        self.config = config
        self.db = db or Database(config.database)
        self.engine = engine or RecommendationEngine(
            SnapshotStore(self.db), config.recommendations, config.ranking
        )

    # ── Rankings and scores ────────────────────────────────────────────────────

    def get_validator_rankings(
        self,
        category: str = "overall",
        limit: Optional[int] = None,
        filters: Optional[RankingFilters] = None,
    ) -> RankingPage:
        """Ranked entries of ``category`` from the latest snapshot.

        With no published snapshot yet the page is empty.

        Raises:
            ValidationError: Unknown category or negative limit.
        """
        if limit is not None and limit < 0:
            raise ValidationError(f"limit must be non-negative, got {limit}.")
        with self.db.session(f"read ranking {category}") as conn:
            repo = ScoreSnapshotRepository(conn)
            snapshot_id = repo.get_latest_snapshot_id()
            if snapshot_id is None:
                logger.warning("No published snapshot; returning an empty ranking")
                return RankingPage(category, [], 0, None, None)
            ranking = repo.get_ranking(snapshot_id, category)
            if ranking is None:
                raise ValidationError(
                    f"Unknown ranking category '{category}'. "
                    f"Available: {repo.list_categories(snapshot_id)}."
                )

        return RankingPage(
            category=category,
            entries=filter_ranking(ranking, filters, limit),
            total_validators=ranking.total_validators,
            snapshot_id=snapshot_id,
            generated_at=ranking.generated_at,
        )

    def get_validator_score_breakdown(self, validator_id: str) -> Optional[CompositeScore]:
        """Full score (sub-scores, composite, confidence, grade) or ``None`` if unscored."""
        with self.db.session(f"read score {validator_id}") as conn:
            repo = ScoreSnapshotRepository(conn)
            snapshot_id = repo.get_latest_snapshot_id()
            if snapshot_id is None:
                return None
            return repo.get_score(snapshot_id, validator_id)

    def get_cohort_comparison(self, min_sample_size: Optional[int] = None) -> CohortComparison:
        """MEV-enabled vs standard comparison over the latest snapshot."""
        with self.db.session("read scores for comparison") as conn:
            repo = ScoreSnapshotRepository(conn)
            snapshot_id = repo.get_latest_snapshot_id()
            scores = repo.get_scores(snapshot_id) if snapshot_id is not None else []
        return perform_comparison(scores, self.config.comparison, min_sample_size)

    # ── Recommendations ────────────────────────────────────────────────────────

    def get_personalized_recommendations(
        self,
        user_id: str,
        options: Optional[RecommendationOptions] = None,
    ) -> RecommendationResult:
        return self.engine.get_personalized_recommendations(user_id, options)

    def clear_user_cache(self, user_id: str) -> int:
        return self.engine.clear_user_cache(user_id)

    def get_cache_stats(self) -> dict[str, Any]:
        return self.engine.get_cache_stats()
