"""
Cohort comparison engine.

Partitions scored validators into two labelled cohorts (MEV-enabled vs
standard by default) and contrasts them metric by metric.

Underpowered samples
--------------------
If either cohort is smaller than ``min_sample_size`` the result carries
``sufficient_sample=False``, the sample sizes, an explanatory message and
no metrics or correlations. Nothing numeric is presented as reliable; callers
that require reliable numbers use ``CohortComparison.ensure_reliable()``,
which raises ``ComparisonUnderpoweredError``.

Metrics compared
----------------
composite_score, commission_rate, estimated_yield_after_fees, uptime.
Validators missing a metric are left out of that metric only; a metric with
fewer than two values in a cohort is skipped.

Correlations (pooled over both cohorts)
---------------------------------------
commission_vs_score, uptime_vs_score, mev_vs_yield.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from validator_analytics.analysis.stats import (
    mean,
    pearson_correlation,
    variance,
    volatility,
    welch_t_test,
)
from validator_analytics.config import ComparisonConfig
from validator_analytics.models.comparison import CohortComparison, MetricComparison
from validator_analytics.models.score import CompositeScore

logger = logging.getLogger(__name__)

Partition = Callable[[CompositeScore], bool]

COMPARED_METRICS: tuple[str, ...] = (
    "composite_score",
    "commission_rate",
    "estimated_yield_after_fees",
    "uptime",
)

_CORRELATIONS: dict[str, tuple[str, str]] = {
    "commission_vs_score": ("commission_rate", "composite_score"),
    "uptime_vs_score": ("uptime", "composite_score"),
    "mev_vs_yield": ("total_mev_rewards", "estimated_yield_after_fees"),
}


def _values(scores: list[CompositeScore], metric: str) -> list[float]:
    return [v for v in (getattr(s, metric) for s in scores) if v is not None]


def _pairs(scores: list[CompositeScore], x: str, y: str) -> tuple[list[float], list[float]]:
    xs, ys = [], []
    for s in scores:
        vx, vy = getattr(s, x), getattr(s, y)
        if vx is not None and vy is not None:
            xs.append(vx)
            ys.append(vy)
    return xs, ys


def _compare_metric(
    metric: str,
    a: list[float],
    b: list[float],
    critical_value: float,
) -> Optional[MetricComparison]:
    if len(a) < 2 or len(b) < 2:
        return None
    test = welch_t_test(a, b, critical_value)
    var_a, var_b = variance(a), variance(b)
    return MetricComparison(
        metric=metric,
        mean_a=round(mean(a), 4),
        mean_b=round(mean(b), 4),
        mean_difference=round(test.mean_difference, 4),
        variance_a=round(var_a, 4),
        variance_b=round(var_b, 4),
        variance_difference=round(var_a - var_b, 4),
        volatility_a=round(volatility(a), 4),
        volatility_b=round(volatility(b), 4),
        t_statistic=test.t_statistic,
        degrees_of_freedom=round(test.degrees_of_freedom, 2),
        p_value=round(test.p_value, 6),
        significant=test.significant,
        ci_low=round(test.ci_low, 4),
        ci_high=round(test.ci_high, 4),
    )


def _insights(
    label_a: str,
    label_b: str,
    cohort_a: list[CompositeScore],
    cohort_b: list[CompositeScore],
    metrics: list[MetricComparison],
) -> list[str]:
    insights: list[str] = []

    total_stake = sum(s.stake_amount for s in cohort_a + cohort_b)
    if total_stake > 0:
        share = sum(s.stake_amount for s in cohort_a) / total_stake
        if share > 0.15:
            insights.append(f"{label_a} validators hold {share * 100:.1f}% of compared stake")

    by_name = {m.metric: m for m in metrics}
    score = by_name.get("composite_score")
    if score is not None and score.significant:
        direction = "higher" if score.mean_difference > 0 else "lower"
        insights.append(
            f"{label_a} validators score significantly {direction} than {label_b} "
            f"(Δ {abs(score.mean_difference):.1f}, p={score.p_value:.3f})"
        )
    commission = by_name.get("commission_rate")
    if commission is not None and abs(commission.mean_difference) > 1:
        direction = "higher" if commission.mean_difference > 0 else "lower"
        insights.append(
            f"{label_a} validators charge {direction} commission by "
            f"{abs(commission.mean_difference):.1f} points on average"
        )
    yld = by_name.get("estimated_yield_after_fees")
    if yld is not None and yld.significant:
        direction = "higher" if yld.mean_difference > 0 else "lower"
        insights.append(
            f"{label_a} validators deliver {direction} net yield "
            f"({yld.mean_a:.2f}% vs {yld.mean_b:.2f}%)"
        )
    return insights


def perform_comparison(
    scores: list[CompositeScore],
    config: ComparisonConfig,
    min_sample_size: Optional[int] = None,
    partition: Partition = lambda s: s.is_mev_enabled,
    labels: tuple[str, str] = ("mev_enabled", "standard"),
) -> CohortComparison:
    """Compare the cohort selected by ``partition`` against the rest.

    Args:
        scores: Composite scores of the whole population.
        config: Comparison settings (default minimum, critical value).
        min_sample_size: Overrides ``config.min_sample_size`` when given.
        partition: Returns ``True`` for members of the first cohort.
        labels: Names of the (first, second) cohorts.
    """
    minimum = config.min_sample_size if min_sample_size is None else min_sample_size
    label_a, label_b = labels
    cohort_a = [s for s in scores if partition(s)]
    cohort_b = [s for s in scores if not partition(s)]
    sizes = {label_a: len(cohort_a), label_b: len(cohort_b)}

    if len(cohort_a) < minimum or len(cohort_b) < minimum:
        logger.info(
            "Cohort comparison underpowered: %s (minimum %d per cohort)", sizes, minimum
        )
        return CohortComparison(
            cohort_a=label_a,
            cohort_b=label_b,
            sample_sizes=sizes,
            min_sample_size=minimum,
            sufficient_sample=False,
            message=(
                f"Insufficient sample size: {label_a}={len(cohort_a)}, "
                f"{label_b}={len(cohort_b)}; each cohort needs at least {minimum}. "
                "No statistics are reported."
            ),
        )

    metrics = [
        m
        for m in (
            _compare_metric(
                name,
                _values(cohort_a, name),
                _values(cohort_b, name),
                config.critical_value,
            )
            for name in COMPARED_METRICS
        )
        if m is not None
    ]

    pooled = cohort_a + cohort_b
    correlations = {
        name: round(pearson_correlation(*_pairs(pooled, x, y)), 4)
        for name, (x, y) in _CORRELATIONS.items()
    }

    return CohortComparison(
        cohort_a=label_a,
        cohort_b=label_b,
        sample_sizes=sizes,
        min_sample_size=minimum,
        sufficient_sample=True,
        metrics=metrics,
        correlations=correlations,
        insights=_insights(label_a, label_b, cohort_a, cohort_b, metrics),
        message=f"Compared {len(cohort_a)} {label_a} vs {len(cohort_b)} {label_b} validators.",
    )
