"""
Score models: sub-score breakdown and the composite score.

``SubScores`` holds the five bounded dimensions; ``CompositeScore`` is what a
scoring cycle persists and what every ranking and recommendation reads.

A composite produced by the insufficient-data fallback carries
``insufficient_data=True`` and the grade ``"Insufficient Data"``; it is never
given a letter grade.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from validator_analytics.config import SUB_SCORE_NAMES
from validator_analytics.models.features import MarketComparison, TrendAnalysis

INSUFFICIENT_DATA_GRADE = "Insufficient Data"

# Best first. Index order is used for grade comparisons.
GRADE_ORDER: tuple[str, ...] = (
    "A+", "A", "A-", "B+", "B", "B-", "C+", "C", "C-", "D+", "D", "F",
)

VALID_GRADES = frozenset(GRADE_ORDER) | {INSUFFICIENT_DATA_GRADE}


def _check_bounded(v: float) -> float:
    if not 0.0 <= v <= 100.0:
        raise ValueError(f"Score must be within [0, 100], got {v}.")
    return v


class SubScores(BaseModel):
    """The five sub-scores, each in [0, 100]."""

    model_config = ConfigDict(frozen=True)

    rate_competitiveness: float
    performance_ratio: float
    commission_stability: float
    value_proposition: float
    yield_after_fees: float

    @field_validator(*SUB_SCORE_NAMES)
    @classmethod
    def validate_bounds(cls, v: float) -> float:
        return _check_bounded(v)

    def as_dict(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in SUB_SCORE_NAMES}


class CompositeScore(BaseModel):
    """Weighted composite score with confidence, grade and supporting metrics.

    Attributes:
        validator_id: Vote account.
        sub_scores: Five-dimension breakdown.
        composite_score: Weighted sum of sub-scores, in [0, 100].
        confidence_level: Epoch-coverage confidence, in [0, 100].
        grade: Letter grade, or ``"Insufficient Data"``.
        insufficient_data: ``True`` when the fallback path produced this score.
        commission_rate / average_commission / commission_changes: Commission metrics.
        performance_ratio / estimated_yield_after_fees: Derived indicators.
        epochs_analyzed: Epochs active at scoring time.
        stake_amount / is_mev_enabled / category / uptime / total_mev_rewards:
            Carried through for filters, cohorts and metric rankings.
        market_comparison / trend_analysis: Optional enrichment for breakdowns.
    """

    model_config = ConfigDict(frozen=True)

    validator_id: str
    sub_scores: SubScores
    composite_score: float
    confidence_level: float
    grade: str
    insufficient_data: bool = False

    commission_rate: Optional[float] = None
    average_commission: Optional[float] = None
    commission_changes: Optional[int] = None
    performance_ratio: Optional[float] = None
    estimated_yield_after_fees: Optional[float] = None
    epochs_analyzed: int = 0

    stake_amount: float = 0.0
    is_mev_enabled: bool = False
    category: Optional[str] = None
    uptime: Optional[float] = None
    total_mev_rewards: Optional[float] = None

    market_comparison: Optional[MarketComparison] = None
    trend_analysis: Optional[TrendAnalysis] = None

    @field_validator("composite_score", "confidence_level")
    @classmethod
    def validate_bounds(cls, v: float) -> float:
        return _check_bounded(v)

    @field_validator("grade")
    @classmethod
    def validate_grade(cls, v: str) -> str:
        if v not in VALID_GRADES:
            raise ValueError(f"Unknown grade '{v}'. Must be one of {sorted(VALID_GRADES)}.")
        return v
