"""
Score calculators: pure functions from a feature vector to bounded sub-scores.

Every calculator takes the same shared ``ScoringConfig`` so thresholds and
benchmarks cannot drift between siblings. All outputs are clamped to [0, 100]
and rounded to 2 decimals.

Sub-score formulas
------------------
rate_competitiveness:
    base = max(0, 100 − 2·c)           (c = commission percent)
    c ≤ excellent (5)   → ×1.2 (capped at 100)
    c ≤ good (7.5)      → ×1.1
    c > high (15)       → ×0.7
    market adjustment   = clamp(−(c − market_average)·2, ±15)

performance_ratio:
    min(100, ratio / 2 · 100)
    ratio ≥ 2.5 → ×1.15, ratio ≥ 2.0 → ×1.1, ratio < minimum (1.2) → ×0.6

commission_stability (35 / 30 / 25 / 10):
    change frequency  = max(0, 100 − changes·10)
    variance          = 100 − min(100, variance·10)
    consistency       = stability·100
    data quality      = min(100, history_epochs·2)

value_proposition (30 / 30 / 25 / 15):
    uptime, min(100, ratio·40), mev_consistency·100, max(0, 100 − 5·c)

yield_after_fees (piecewise-linear):
    ≥ excellent            → 100
    good … excellent       → 75 … 100
    average … good         → 50 … 75
    0 … average            → 0 … 50

Absent history is never read as zero-risk: missing commission history uses
``scoring.missing`` (10 changes, variance 100); missing uptime, MEV or yield
contributes 0.

Confidence (40 / 35 / 25):
    min(100, epochs_active·2), min(100, performance_epochs·4),
    min(100, history_epochs·2)
"""

from __future__ import annotations

from typing import Mapping

from validator_analytics.config import SUB_SCORE_NAMES, ScoringConfig
from validator_analytics.models.features import ValidatorFeatureVector
from validator_analytics.models.score import GRADE_ORDER, SubScores

# Lower bound (inclusive) of each letter grade, best first.
GRADE_THRESHOLDS: tuple[tuple[float, str], ...] = (
    (90.0, "A+"),
    (85.0, "A"),
    (80.0, "A-"),
    (75.0, "B+"),
    (70.0, "B"),
    (65.0, "B-"),
    (60.0, "C+"),
    (55.0, "C"),
    (50.0, "C-"),
    (40.0, "D+"),
    (30.0, "D"),
)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _score(value: float) -> float:
    return round(_clamp(value), 2)


# ── Sub-scores ─────────────────────────────────────────────────────────────────

def rate_competitiveness_score(commission_rate: float, config: ScoringConfig) -> float:
    t = config.thresholds
    score = max(0.0, 100.0 - commission_rate * 2.0)

    if commission_rate <= t.excellent_commission:
        score = min(100.0, score * 1.2)
    elif commission_rate <= t.good_commission:
        score *= 1.1
    elif commission_rate > t.high_commission:
        score *= 0.7

    adjustment = _clamp(
        -(commission_rate - t.market_average_commission) * 2.0,
        -t.market_adjustment_cap,
        t.market_adjustment_cap,
    )
    return _score(score + adjustment)


def performance_ratio_score(ratio: float, config: ScoringConfig) -> float:
    score = min(100.0, ratio / 2.0 * 100.0)

    if ratio >= 2.5:
        score *= 1.15
    elif ratio >= 2.0:
        score *= 1.1
    elif ratio < config.thresholds.minimum_performance_ratio:
        score *= 0.6

    return _score(score)


def stability_score(vector: ValidatorFeatureVector, config: ScoringConfig) -> float:
    changes = vector.commission_changes
    if changes is None:
        changes = config.missing.commission_changes
    variance = vector.commission_variance
    if variance is None:
        variance = config.missing.commission_variance

    change_term = max(0.0, 100.0 - changes * 10.0)
    variance_term = max(0.0, 100.0 - min(100.0, variance * 10.0))
    consistency_term = min(100.0, vector.stability * 100.0)
    quality_term = min(100.0, vector.history_epochs * 2.0)

    return _score(
        change_term * 0.35
        + variance_term * 0.30
        + consistency_term * 0.25
        + quality_term * 0.10
    )


def value_proposition_score(vector: ValidatorFeatureVector, config: ScoringConfig) -> float:
    uptime_term = min(100.0, vector.avg_uptime or 0.0)
    performance_term = min(100.0, vector.performance_ratio * 40.0)
    mev_term = min(100.0, (vector.mev_consistency or 0.0) * 100.0)
    rate_term = max(0.0, 100.0 - vector.commission_rate * 5.0)

    return _score(
        uptime_term * 0.30
        + performance_term * 0.30
        + mev_term * 0.25
        + rate_term * 0.15
    )


def yield_score(net_yield: float | None, config: ScoringConfig) -> float:
    if net_yield is None or net_yield <= 0:
        return 0.0
    b = config.benchmarks

    if net_yield >= b.excellent_yield:
        score = 100.0
    elif net_yield >= b.good_yield:
        score = 75.0 + (net_yield - b.good_yield) / (b.excellent_yield - b.good_yield) * 25.0
    elif net_yield >= b.average_yield:
        score = 50.0 + (net_yield - b.average_yield) / (b.good_yield - b.average_yield) * 25.0
    else:
        score = net_yield / b.average_yield * 50.0

    return _score(score)


def compute_sub_scores(vector: ValidatorFeatureVector, config: ScoringConfig) -> SubScores:
    """All five sub-scores for one feature vector."""
    return SubScores(
        rate_competitiveness=rate_competitiveness_score(vector.commission_rate, config),
        performance_ratio=performance_ratio_score(vector.performance_ratio, config),
        commission_stability=stability_score(vector, config),
        value_proposition=value_proposition_score(vector, config),
        yield_after_fees=yield_score(vector.estimated_yield_after_fees, config),
    )


# ── Composite, confidence, grade ───────────────────────────────────────────────

def weighted_composite(sub_scores: SubScores, weights: Mapping[str, float]) -> float:
    """Σ sub-score·weight / 100, with weights in percent.

    Callers validate the weight vector; this function only applies it.
    """
    values = sub_scores.as_dict()
    total = sum(values[name] * weights[name] for name in SUB_SCORE_NAMES) / 100.0
    return _score(total)


def confidence_level(
    epochs_active: int,
    performance_epochs: int,
    history_epochs: int,
) -> float:
    """Epoch-coverage confidence; non-decreasing in every argument."""
    activity = min(100.0, epochs_active * 2.0)
    performance = min(100.0, performance_epochs * 4.0)
    history = min(100.0, history_epochs * 2.0)
    return _score(activity * 0.40 + performance * 0.35 + history * 0.25)


def letter_grade(score: float) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"


def grade_rank(grade: str) -> int:
    """Position in ``GRADE_ORDER`` (0 = best). Non-letter grades sort last."""
    try:
        return GRADE_ORDER.index(grade)
    except ValueError:
        return len(GRADE_ORDER)
