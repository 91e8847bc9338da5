"""
Cohort comparison results.

Plain frozen dataclasses, like the backtest metric records: these are computed
in memory and serialized by the host application, never persisted.

An underpowered comparison carries ``sufficient_sample=False`` and no
``metrics``; callers that need reliable numbers call ``ensure_reliable()``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from validator_analytics.errors import ComparisonUnderpoweredError


def _finite_or_none(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


@dataclass(frozen=True)
class MetricComparison:
    """Two-sample comparison of one metric between cohorts.

    Attributes:
        metric:             Metric name (e.g. ``"composite_score"``).
        mean_a / mean_b:    Cohort means.
        mean_difference:    ``mean_a - mean_b``.
        variance_a / variance_b: Population variances.
        variance_difference: ``variance_a - variance_b``.
        volatility_a / volatility_b: Coefficient of variation (std / |mean|).
        t_statistic:        Welch t statistic; infinite when both cohorts have
                            zero variance and different means.
        degrees_of_freedom: Welch–Satterthwaite degrees of freedom.
        p_value:            Two-sided p-value (normal approximation).
        significant:        ``|t| > critical_value``.
        ci_low / ci_high:   Confidence interval for the mean difference.
    """

    metric: str
    mean_a: float
    mean_b: float
    mean_difference: float
    variance_a: float
    variance_b: float
    variance_difference: float
    volatility_a: float
    volatility_b: float
    t_statistic: float
    degrees_of_freedom: float
    p_value: float
    significant: bool
    ci_low: float
    ci_high: float


@dataclass(frozen=True)
class CohortComparison:
    """Result of comparing two labelled validator cohorts."""

    cohort_a: str
    cohort_b: str
    sample_sizes: dict[str, int]
    min_sample_size: int
    sufficient_sample: bool
    metrics: list[MetricComparison] = field(default_factory=list)
    correlations: dict[str, float] = field(default_factory=dict)
    insights: list[str] = field(default_factory=list)
    message: str = ""

    @property
    def status(self) -> str:
        return "ok" if self.sufficient_sample else "insufficient_sample_size"

    def metric(self, name: str) -> Optional[MetricComparison]:
        for m in self.metrics:
            if m.metric == name:
                return m
        return None

    def ensure_reliable(self) -> "CohortComparison":
        """Return self, or raise if the cohorts were too small."""
        if not self.sufficient_sample:
            raise ComparisonUnderpoweredError(self.sample_sizes, self.min_sample_size)
        return self

    def summary(self, primary_metric: str = "composite_score") -> dict:
        """Flat summary: mean/variance difference, correlation, significance, sizes.

        Numeric fields are ``None`` when the sample is insufficient. The summary
        is strict-JSON safe: an infinite ``t_statistic`` is reported as ``None``
        while ``p_value`` and ``significant`` still carry the outcome.
        """
        primary = self.metric(primary_metric) if self.sufficient_sample else None
        return {
            "status": self.status,
            "cohorts": [self.cohort_a, self.cohort_b],
            "mean_difference": primary.mean_difference if primary else None,
            "variance_difference": primary.variance_difference if primary else None,
            "correlation": (
                self.correlations.get("commission_vs_score")
                if self.sufficient_sample else None
            ),
            "significance": (
                {"t_statistic": _finite_or_none(primary.t_statistic), "p_value": primary.p_value,
                 "significant": primary.significant}
                if primary else None
            ),
            "sample_sizes": dict(self.sample_sizes),
            "message": self.message,
        }
