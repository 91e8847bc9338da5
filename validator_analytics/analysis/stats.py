"""
Statistical primitives shared by the comparison engine.

Design notes
------------
variance
    Population variance (n denominator), the figure cohort summaries report;
    0.0 for an empty list. ``sample_variance`` (n − 1) is the unbiased
    estimator the t-test needs; 0.0 for fewer than two values.

volatility
    Coefficient of variation, std / |mean|. 0.0 when the mean is 0 so a
    flat-at-zero series never reports infinite volatility.

pearson_correlation
    Bounded to [−1, 1]. Returns 0.0 instead of failing for mismatched or
    too-short inputs and for zero-variance inputs.

welch_t_test
    Unequal-variance two-sample t statistic with Welch–Satterthwaite degrees
    of freedom. The p-value uses the normal approximation, matching the fixed
    ``critical_value`` used for the significance flag.
"""

from __future__ import annotations

import math
from dataclasses import dataclass


def mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def variance(values: list[float]) -> float:
    if not values:
        return 0.0
    m = mean(values)
    return sum((v - m) ** 2 for v in values) / len(values)


def sample_variance(values: list[float]) -> float:
    n = len(values)
    if n < 2:
        return 0.0
    m = mean(values)
    return sum((v - m) ** 2 for v in values) / (n - 1)


def volatility(values: list[float]) -> float:
    m = mean(values)
    if m == 0:
        return 0.0
    return math.sqrt(variance(values)) / abs(m)


def pearson_correlation(x: list[float], y: list[float]) -> float:
    if len(x) != len(y) or len(x) < 2:
        return 0.0
    mx, my = mean(x), mean(y)
    num = sum((a - mx) * (b - my) for a, b in zip(x, y))
    den_x = sum((a - mx) ** 2 for a in x)
    den_y = sum((b - my) ** 2 for b in y)
    den = math.sqrt(den_x * den_y)
    if den == 0:
        return 0.0
    return max(-1.0, min(1.0, num / den))


def normal_two_sided_p(t: float) -> float:
    """Two-sided p-value of ``t`` under the standard normal."""
    if math.isinf(t):
        return 0.0
    return math.erfc(abs(t) / math.sqrt(2.0))


@dataclass(frozen=True)
class TTestResult:
    mean_difference: float
    t_statistic: float
    degrees_of_freedom: float
    p_value: float
    significant: bool
    ci_low: float
    ci_high: float


def welch_t_test(a: list[float], b: list[float], critical_value: float = 1.96) -> TTestResult:
    """Welch's t-test of ``mean(a) − mean(b)``.

    Raises:
        ValueError: If either sample has fewer than two values.
    """
    na, nb = len(a), len(b)
    if na < 2 or nb < 2:
        raise ValueError("Each sample needs at least two values for a t-test.")

    diff = mean(a) - mean(b)
    va, vb = sample_variance(a) / na, sample_variance(b) / nb
    std_err = math.sqrt(va + vb)

    if std_err == 0:
        t = 0.0 if diff == 0 else math.copysign(math.inf, diff)
    else:
        t = diff / std_err

    df_den = (va ** 2) / (na - 1) + (vb ** 2) / (nb - 1)
    df = (va + vb) ** 2 / df_den if df_den > 0 else float(na + nb - 2)

    margin = critical_value * std_err
    return TTestResult(
        mean_difference=diff,
        t_statistic=t,
        degrees_of_freedom=df,
        p_value=normal_two_sided_p(t),
        significant=abs(t) > critical_value,
        ci_low=diff - margin,
        ci_high=diff + margin,
    )
