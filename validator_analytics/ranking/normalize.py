"""
Metric normalization to [0, 1] so heterogeneous metrics can be weighted together.

Two transform families:

bounded
    Linear between fixed ``(low, high)`` bounds, clamped. ``inverse=True``
    flips the scale for metrics where lower is better (commission).

logistic
    ``1 / (1 + exp(−k·(x − mid)))``, optionally on ``log10(1 + x)`` for
    heavy-tailed amounts (MEV rewards, stake).

``None`` raw values normalize to 0.0. Unknown metric names raise
``ValidationError``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from validator_analytics.errors import ValidationError


@dataclass(frozen=True)
class _Bounded:
    low: float
    high: float
    inverse: bool = False


@dataclass(frozen=True)
class _Logistic:
    midpoint: float
    steepness: float
    log_scale: bool = False


METRIC_TRANSFORMS: dict[str, _Bounded | _Logistic] = {
    "uptime":                     _Bounded(0.0, 100.0),
    "composite_score":            _Bounded(0.0, 100.0),
    "confidence_level":           _Bounded(0.0, 100.0),
    "stability":                  _Bounded(0.0, 1.0),
    "estimated_yield_after_fees": _Bounded(0.0, 12.0),
    "commission_rate":            _Bounded(0.0, 25.0, inverse=True),
    "performance_ratio":          _Logistic(midpoint=2.0, steepness=1.5),
    "total_mev_rewards":          _Logistic(midpoint=2.0, steepness=2.0, log_scale=True),
    "stake_amount":               _Logistic(midpoint=5.0, steepness=1.5, log_scale=True),
}


def normalize_metric_value(metric: str, raw: Optional[float]) -> float:
    """Map a raw metric value onto [0, 1].

    Raises:
        ValidationError: If ``metric`` has no registered transform.
    """
    transform = METRIC_TRANSFORMS.get(metric)
    if transform is None:
        raise ValidationError(
            f"Unknown metric '{metric}'. Must be one of {sorted(METRIC_TRANSFORMS)}."
        )
    if raw is None or math.isnan(raw):
        return 0.0

    if isinstance(transform, _Bounded):
        span = transform.high - transform.low
        value = (raw - transform.low) / span
        value = max(0.0, min(1.0, value))
        return 1.0 - value if transform.inverse else value

    x = math.log10(1.0 + max(0.0, raw)) if transform.log_scale else raw
    z = -transform.steepness * (x - transform.midpoint)
    # exp overflow guard for extreme inputs
    if z > 700:
        return 0.0
    return 1.0 / (1.0 + math.exp(z))
