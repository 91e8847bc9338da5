"""
Composite scoring: feature vector → ``CompositeScore``.

Two paths
---------
Full path (``score_full``)
    Five sub-scores, weighted composite, epoch-coverage confidence and a
    letter grade. Raises ``InsufficientDataError`` if handed a vector below
    the epoch minimum.

Fallback path (``insufficient_data_score``)
    Conservative heuristic from commission and epoch count alone::

        base       = max(floor, offset − c)
        composite  = min(max_score, base + epochs · points_per_epoch)
        confidence = min(max_confidence, epochs · confidence_per_epoch)

    The grade is always ``"Insufficient Data"``; it never receives a letter.

``score_validator`` dispatches between the two and resolves
``InsufficientDataError`` locally, so callers never see it.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from validator_analytics.config import ScoringConfig
from validator_analytics.errors import InsufficientDataError
from validator_analytics.models.features import (
    GatherResult,
    InsufficientData,
    MarketComparison,
    TrendAnalysis,
    ValidatorFeatureVector,
)
from validator_analytics.models.ranking import DEFAULT_WEIGHT_TOLERANCE, WeightVector
from validator_analytics.models.score import (
    INSUFFICIENT_DATA_GRADE,
    CompositeScore,
    SubScores,
)
from validator_analytics.scoring.calculators import (
    compute_sub_scores,
    confidence_level,
    letter_grade,
    weighted_composite,
)

logger = logging.getLogger(__name__)


def score_full(
    vector: ValidatorFeatureVector,
    config: ScoringConfig,
    min_epochs: int,
    weights: Optional[Mapping[str, float]] = None,
    market_comparison: Optional[MarketComparison] = None,
    trend_analysis: Optional[TrendAnalysis] = None,
    tolerance: float = DEFAULT_WEIGHT_TOLERANCE,
) -> CompositeScore:
    """Score a sufficiently covered validator.

    ``weights`` defaults to ``config.weights``; any other vector must name all
    five sub-scores and sum to 100 within ``tolerance``.

    Raises:
        InsufficientDataError: If ``vector.epochs_active < min_epochs``.
        ValidationError: Malformed ``weights``.
    """
    if vector.epochs_active < min_epochs:
        raise InsufficientDataError(vector.validator_id, vector.epochs_active, min_epochs)

    if weights is None:
        weights = config.weights.as_dict()
    vector_weights = WeightVector.from_mapping(weights, tolerance)
    sub_scores = compute_sub_scores(vector, config)
    composite = weighted_composite(sub_scores, vector_weights.as_dict())

    return CompositeScore(
        validator_id=vector.validator_id,
        sub_scores=sub_scores,
        composite_score=composite,
        confidence_level=confidence_level(
            vector.epochs_active, vector.performance_epochs, vector.history_epochs
        ),
        grade=letter_grade(composite),
        commission_rate=vector.commission_rate,
        average_commission=(
            round(vector.avg_commission_rate, 2)
            if vector.avg_commission_rate is not None else None
        ),
        commission_changes=vector.commission_changes,
        performance_ratio=vector.performance_ratio,
        estimated_yield_after_fees=vector.estimated_yield_after_fees,
        epochs_analyzed=vector.epochs_active,
        stake_amount=vector.stake_amount,
        is_mev_enabled=vector.is_mev_enabled,
        category=vector.category,
        uptime=vector.avg_uptime,
        total_mev_rewards=vector.total_mev_rewards,
        market_comparison=market_comparison,
        trend_analysis=trend_analysis,
    )


def insufficient_data_score(
    validator_id: str,
    commission_rate: float,
    epochs_active: int,
    config: ScoringConfig,
    stake_amount: float = 0.0,
    is_mev_enabled: bool = False,
    category: Optional[str] = None,
) -> CompositeScore:
    """Conservative fallback score, explicitly flagged as insufficient data."""
    fb = config.insufficient
    base = max(fb.base_score_floor, fb.base_score_offset - commission_rate)
    composite = min(fb.max_score, base + epochs_active * fb.points_per_epoch)
    confidence = min(fb.max_confidence, epochs_active * fb.confidence_per_epoch)

    return CompositeScore(
        validator_id=validator_id,
        sub_scores=SubScores(
            rate_competitiveness=round(max(0.0, fb.rate_offset - commission_rate * 2.0), 2),
            performance_ratio=fb.performance_ratio,
            commission_stability=fb.commission_stability,
            value_proposition=fb.value_proposition,
            yield_after_fees=fb.yield_after_fees,
        ),
        composite_score=round(composite, 2),
        confidence_level=round(confidence, 2),
        grade=INSUFFICIENT_DATA_GRADE,
        insufficient_data=True,
        commission_rate=commission_rate,
        epochs_analyzed=epochs_active,
        stake_amount=stake_amount,
        is_mev_enabled=is_mev_enabled,
        category=category,
    )


def score_validator(
    gathered: GatherResult,
    config: ScoringConfig,
    min_epochs: int,
    weights: Optional[Mapping[str, float]] = None,
    market_comparison: Optional[MarketComparison] = None,
    trend_analysis: Optional[TrendAnalysis] = None,
) -> CompositeScore:
    """Score a gathered validator, falling back for insufficient coverage."""
    if isinstance(gathered, InsufficientData):
        return insufficient_data_score(
            gathered.validator_id,
            gathered.commission_rate or 0.0,
            gathered.epochs_active,
            config,
            stake_amount=gathered.stake_amount,
            is_mev_enabled=gathered.is_mev_enabled,
            category=gathered.category,
        )

    try:
        return score_full(
            gathered, config, min_epochs, weights, market_comparison, trend_analysis
        )
    except InsufficientDataError as exc:
        logger.debug("%s; using fallback score", exc)
        return insufficient_data_score(
            gathered.validator_id,
            gathered.commission_rate,
            gathered.epochs_active,
            config,
            stake_amount=gathered.stake_amount,
            is_mev_enabled=gathered.is_mev_enabled,
            category=gathered.category,
        )


def reweight(
    score: CompositeScore,
    weights: Mapping[str, float],
    tolerance: float = DEFAULT_WEIGHT_TOLERANCE,
) -> CompositeScore:
    """Re-apply a different weight vector to an existing score.

    Fallback scores are returned unchanged: they do not depend on weights.

    Raises:
        ValidationError: Malformed ``weights``, even for a fallback score.
    """
    vector_weights = WeightVector.from_mapping(weights, tolerance)
    if score.insufficient_data:
        return score
    composite = weighted_composite(score.sub_scores, vector_weights.as_dict())
    return score.model_copy(update={"composite_score": composite, "grade": letter_grade(composite)})
