"""
Ranking system: composite scores → complete, totally ordered rankings.

Usage flow
----------
1. calculate_overall_ranking(scores, weights)
   -> Ranking  (every validator, ranked under one weight vector)

2. build_category_rankings(scores, ranking_config, default_weights)
   -> dict[category, Ranking]  (all categories of one scoring cycle)

3. filter_ranking(ranking, filters, limit)
   -> list[RankingEntry]  (read-side view; ranks are not renumbered)

Ordering rule
-------------
Entries sort by score descending, then validator id ascending, so ties are
broken deterministically (lower id wins) and the same input always yields
the same list. Rankings are built whole; there is no partial or streamed
form.

Weight vectors that do not sum to 100 (± tolerance) are rejected with
``ValidationError``; they are never renormalized. Insufficient-data
validators keep their fallback score under every weight vector.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Mapping, Optional

from validator_analytics.config import RankingConfig
from validator_analytics.errors import ValidationError
from validator_analytics.models.ranking import (
    DEFAULT_WEIGHT_TOLERANCE,
    Ranking,
    RankingEntry,
    RankingFilters,
    WeightVector,
)
from validator_analytics.models.score import INSUFFICIENT_DATA_GRADE, CompositeScore
from validator_analytics.ranking.normalize import normalize_metric_value
from validator_analytics.scoring.calculators import letter_grade
from validator_analytics.scoring.scorer import reweight
from validator_analytics.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

COHORT_CATEGORIES: dict[str, bool] = {"mev_enabled": True, "standard": False}


def _check_unique(scores: list[CompositeScore]) -> None:
    seen: set[str] = set()
    for s in scores:
        if s.validator_id in seen:
            raise ValidationError(f"Duplicate validator '{s.validator_id}' in ranking input.")
        seen.add(s.validator_id)


def _percentile(index: int, total: int) -> float:
    return float(round((1 - index / total) * 100))


def _entries(
    ranked: list[tuple[float, str, CompositeScore, Optional[float]]],
    grade_of,
) -> list[RankingEntry]:
    ranked.sort(key=lambda item: (-item[0], item[1]))
    total = len(ranked)
    return [
        RankingEntry(
            validator_id=vid,
            rank=i + 1,
            composite_score=score_value,
            grade=grade_of(score_value, s),
            percentile=_percentile(i, total),
            confidence_level=s.confidence_level,
            insufficient_data=s.insufficient_data,
            commission_rate=s.commission_rate,
            estimated_yield_after_fees=s.estimated_yield_after_fees,
            stake_amount=s.stake_amount,
            is_mev_enabled=s.is_mev_enabled,
            category=s.category,
            metric_value=metric_value,
        )
        for i, (score_value, vid, s, metric_value) in enumerate(ranked)
    ]


def calculate_overall_ranking(
    scores: list[CompositeScore],
    weights: Optional[Mapping[str, float]] = None,
    category: str = "overall",
    tolerance: float = DEFAULT_WEIGHT_TOLERANCE,
    generated_at: Optional[datetime] = None,
) -> Ranking:
    """Rank every validator by composite score under ``weights``.

    ``weights=None`` keeps each score's stored composite (the default vector).

    Raises:
        ValidationError: Malformed weight vector or duplicate validator ids.
    """
    _check_unique(scores)
    vector = WeightVector.from_mapping(weights, tolerance) if weights is not None else None

    ranked = []
    for s in scores:
        scored = reweight(s, vector.as_dict(), tolerance) if vector is not None else s
        ranked.append((scored.composite_score, s.validator_id, scored, None))

    return Ranking(
        category=category,
        entries=_entries(ranked, lambda _value, s: s.grade),
        weights=vector.as_dict() if vector is not None else None,
        generated_at=generated_at or utcnow(),
    )


def rank_by_metric(
    scores: list[CompositeScore],
    metric: str,
    category: Optional[str] = None,
    generated_at: Optional[datetime] = None,
) -> Ranking:
    """Rank by one normalized metric (score = normalized value × 100).

    Raises:
        ValidationError: Unknown metric or duplicate validator ids.
    """
    _check_unique(scores)
    ranked = []
    for s in scores:
        raw = getattr(s, metric, None)
        value = round(normalize_metric_value(metric, raw) * 100.0, 2)
        ranked.append((value, s.validator_id, s, raw))

    def grade_of(value: float, s: CompositeScore) -> str:
        return INSUFFICIENT_DATA_GRADE if s.insufficient_data else letter_grade(value)

    return Ranking(
        category=category or metric,
        entries=_entries(ranked, grade_of),
        weights=None,
        generated_at=generated_at or utcnow(),
    )


def build_category_rankings(
    scores: list[CompositeScore],
    config: RankingConfig,
    default_weights: Mapping[str, float],
    generated_at: Optional[datetime] = None,
) -> dict[str, Ranking]:
    """Every ranking category for one scoring cycle.

    Categories: ``overall``; one per ``config.category_weights`` entry;
    ``mev_enabled`` / ``standard`` cohorts under the default weights; one per
    ``config.metric_categories`` entry.
    """
    generated_at = generated_at or utcnow()
    tol = config.weight_tolerance

    rankings: dict[str, Ranking] = {
        "overall": calculate_overall_ranking(
            scores, default_weights, "overall", tol, generated_at
        ),
    }
    for name, weights in config.category_weights.items():
        rankings[name] = calculate_overall_ranking(scores, weights, name, tol, generated_at)
    for name, mev_flag in COHORT_CATEGORIES.items():
        subset = [s for s in scores if s.is_mev_enabled == mev_flag]
        rankings[name] = calculate_overall_ranking(
            subset, default_weights, name, tol, generated_at
        )
    for name, metric in config.metric_categories.items():
        rankings[name] = rank_by_metric(scores, metric, name, generated_at)

    logger.info(
        "Built %d rankings over %d validators", len(rankings), len(scores)
    )
    return rankings


def filter_ranking(
    ranking: Ranking,
    filters: Optional[RankingFilters] = None,
    limit: Optional[int] = None,
) -> list[RankingEntry]:
    """Apply read-side filters and a limit. Entries keep their original ranks.

    Raises:
        ValidationError: If ``limit`` is negative.
    """
    if limit is not None and limit < 0:
        raise ValidationError(f"limit must be non-negative, got {limit}.")
    entries = ranking.entries
    if filters is not None:
        entries = [e for e in entries if filters.accepts(e)]
    return entries if limit is None else entries[:limit]
