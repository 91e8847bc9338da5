"""
Diversification suggestions for a top-N recommendation list.

Checks (each yields at most one suggestion)
-------------------------------------------
validator_count           fewer than ``min_diversified_count`` picks      (medium)
commission_concentration  one commission band holds > threshold of picks  (low)
category_concentration    one category holds > threshold of picks         (medium)
mev_balance               all picks MEV-enabled (medium) or none (high)
stake_concentration       a pick holds > ``stake_concentration_threshold``
                          of total network stake                          (high)

Alternates are drawn from eligible candidates outside the top-N, in ranking
order, restricted to the under-represented side of the check that fired.
"""

from __future__ import annotations

from bisect import bisect_right
from collections import Counter
from typing import Callable, Optional

from validator_analytics.config import RecommendationConfig
from validator_analytics.models.recommendation import (
    DiversificationSuggestion,
    RecommendedValidator,
)

Predicate = Callable[[RecommendedValidator], bool]


def commission_band(rate: Optional[float], bands: list[float]) -> str:
    """Label like ``"5-8%"`` for the band containing ``rate``; ``"unknown"`` for None."""
    if rate is None:
        return "unknown"
    idx = min(max(bisect_right(bands, rate) - 1, 0), len(bands) - 2)
    return f"{bands[idx]:g}-{bands[idx + 1]:g}%"


def _alternates(
    candidates: list[RecommendedValidator],
    chosen: set[str],
    predicate: Predicate,
    limit: int,
) -> list[str]:
    out: list[str] = []
    for c in candidates:
        if len(out) >= limit:
            break
        if c.validator_id not in chosen and predicate(c):
            out.append(c.validator_id)
    return out


def _dominant(labels: list[str]) -> tuple[str, float]:
    label, count = Counter(labels).most_common(1)[0]
    return label, count / len(labels)


def suggest_diversification(
    top: list[RecommendedValidator],
    candidates: list[RecommendedValidator],
    total_stake: float,
    config: RecommendationConfig,
) -> list[DiversificationSuggestion]:
    """Suggestions for ``top`` given the full ordered ``candidates`` list."""
    if not top:
        return []

    chosen = {r.validator_id for r in top}
    limit = config.max_alternates
    suggestions: list[DiversificationSuggestion] = []

    if len(top) < config.min_diversified_count:
        suggestions.append(DiversificationSuggestion(
            kind="validator_count",
            message=(
                f"Only {len(top)} validator(s) selected; spreading stake across at least "
                f"{config.min_diversified_count} reduces single-validator risk."
            ),
            impact="medium",
            alternates=_alternates(candidates, chosen, lambda c: True, limit),
        ))

    if len(top) >= 2:
        bands = [commission_band(r.commission_rate, config.commission_bands) for r in top]
        band, share = _dominant(bands)
        if share > config.concentration_threshold:
            suggestions.append(DiversificationSuggestion(
                kind="commission_concentration",
                message=(
                    f"{share * 100:.0f}% of picks charge commission in the {band} band; "
                    "consider validators with different fee structures."
                ),
                impact="low",
                alternates=_alternates(
                    candidates,
                    chosen,
                    lambda c: commission_band(c.commission_rate, config.commission_bands) != band,
                    limit,
                ),
            ))

        categorized = [r.category for r in top if r.category is not None]
        if len(categorized) >= 2:
            category, share = _dominant(categorized)
            if share > config.concentration_threshold:
                suggestions.append(DiversificationSuggestion(
                    kind="category_concentration",
                    message=(
                        f"{share * 100:.0f}% of picks are '{category}' validators; "
                        "consider other operator categories."
                    ),
                    impact="medium",
                    alternates=_alternates(
                        candidates,
                        chosen,
                        lambda c: c.category is not None and c.category != category,
                        limit,
                    ),
                ))

        mev_count = sum(1 for r in top if r.is_mev_enabled)
        if mev_count == len(top):
            suggestions.append(DiversificationSuggestion(
                kind="mev_balance",
                message="All picks run MEV; consider some standard validators for balance.",
                impact="medium",
                alternates=_alternates(candidates, chosen, lambda c: not c.is_mev_enabled, limit),
            ))
        elif mev_count == 0:
            suggestions.append(DiversificationSuggestion(
                kind="mev_balance",
                message="No picks run MEV; MEV-enabled validators may increase rewards.",
                impact="high",
                alternates=_alternates(candidates, chosen, lambda c: c.is_mev_enabled, limit),
            ))

    if total_stake > 0:
        threshold = config.stake_concentration_threshold
        heavy = [r for r in top if r.stake_amount / total_stake > threshold]
        if heavy:
            names = ", ".join(r.validator_id for r in heavy)
            suggestions.append(DiversificationSuggestion(
                kind="stake_concentration",
                message=(
                    f"{names} already hold(s) more than {threshold * 100:.0f}% of network "
                    "stake; smaller validators improve decentralization."
                ),
                impact="high",
                alternates=_alternates(
                    candidates,
                    chosen,
                    lambda c: c.stake_amount / total_stake <= threshold,
                    limit,
                ),
            ))

    return suggestions
