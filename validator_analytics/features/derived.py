"""
Derived validator indicators: pure functions over raw history.

Every function here is deterministic and side-effect free; the gatherer feeds
them repository output and the tests feed them literals.

Indicators
----------
commission_stats
    avg / variance / number of rate transitions / min / max over the window.
    ``commission_changes`` counts consecutive epochs whose rate differs, so a
    validator that goes 5 → 7 → 5 has two changes.

performance_ratio
    Performance delivered per commission point. Performance is a 0–100 blend
    of uptime (50%), MEV consistency (30%) and vote credits (20%, saturating at
    1000). Zero commission gets the configured sentinel ratio instead of a
    division by zero.

commission_stability
    0–1 blend of change frequency (60%) and variance (40%, saturating at 25).
    Neutral 0.5 when fewer than ``sparse_history_epochs`` points exist.

estimated_yield_after_fees
    Annualized (base + MEV) yield on stake, net of commission, in percent.
    ``None`` when stake is unknown or there is nothing to annualize.
"""

from __future__ import annotations

import statistics
from dataclasses import dataclass
from typing import Optional

from validator_analytics.models.features import CompetitivenessRating, MarketComparison
from validator_analytics.models.validator import CommissionRecord, EpochPerformance

VOTE_CREDIT_SATURATION = 1000.0
VARIANCE_SATURATION = 25.0


@dataclass(frozen=True)
class CommissionStats:
    avg: float
    variance: float
    changes: int
    minimum: float
    maximum: float
    count: int
    first_epoch: int
    last_epoch: int


@dataclass(frozen=True)
class PerformanceStats:
    avg_rewards: float
    avg_uptime: Optional[float]
    avg_vote_credits: Optional[float]
    reward_variance: float
    count: int
    first_epoch: int
    last_epoch: int


@dataclass(frozen=True)
class MarketDistribution:
    """Commission distribution of the comparable validator population."""

    average: float
    median: float
    p25: float
    p75: float
    minimum: float
    count: int


def _mean_or_none(values: list[Optional[float]]) -> Optional[float]:
    present = [v for v in values if v is not None]
    return statistics.fmean(present) if present else None


def commission_stats(history: list[CommissionRecord]) -> Optional[CommissionStats]:
    """Summarize commission history, or ``None`` when there is none."""
    if not history:
        return None
    ordered = sorted(history, key=lambda r: r.epoch_number)
    rates = [r.commission_rate for r in ordered]
    changes = sum(1 for prev, cur in zip(rates, rates[1:]) if cur != prev)
    return CommissionStats(
        avg=statistics.fmean(rates),
        variance=statistics.pvariance(rates),
        changes=changes,
        minimum=min(rates),
        maximum=max(rates),
        count=len(rates),
        first_epoch=ordered[0].epoch_number,
        last_epoch=ordered[-1].epoch_number,
    )


def performance_stats(history: list[EpochPerformance]) -> Optional[PerformanceStats]:
    """Summarize per-epoch performance, or ``None`` when there is none."""
    if not history:
        return None
    ordered = sorted(history, key=lambda r: r.epoch_number)
    rewards = [r.epoch_rewards for r in ordered]
    return PerformanceStats(
        avg_rewards=statistics.fmean(rewards),
        avg_uptime=_mean_or_none([r.uptime for r in ordered]),
        avg_vote_credits=_mean_or_none([r.vote_credits for r in ordered]),
        reward_variance=statistics.pvariance(rewards),
        count=len(ordered),
        first_epoch=ordered[0].epoch_number,
        last_epoch=ordered[-1].epoch_number,
    )


def performance_ratio(
    commission_rate: float,
    uptime: Optional[float],
    mev_consistency: Optional[float],
    vote_credits: Optional[float],
    zero_commission_ratio: float = 10.0,
) -> float:
    """Performance score (0–100) divided by commission percent, rounded to 2 dp.

    Absent inputs contribute nothing to the performance score.
    """
    if commission_rate == 0:
        return zero_commission_ratio

    uptime_term = min(1.0, (uptime or 0.0) / 100.0)
    mev_term = min(1.0, mev_consistency or 0.0)
    votes_term = min(1.0, (vote_credits or 0.0) / VOTE_CREDIT_SATURATION)

    performance = (uptime_term * 0.5 + mev_term * 0.3 + votes_term * 0.2) * 100.0
    return round(performance / commission_rate, 2)


def commission_stability(
    history_epochs: int,
    changes: Optional[int],
    variance: Optional[float],
    sparse_history_epochs: int = 5,
    neutral: float = 0.5,
) -> float:
    """0–1 commission stability; ``neutral`` under sparse history."""
    if history_epochs < sparse_history_epochs or changes is None or variance is None:
        return neutral
    change_term = max(0.0, 1.0 - changes / history_epochs)
    variance_term = max(0.0, 1.0 - min(1.0, variance / VARIANCE_SATURATION))
    return round(change_term * 0.6 + variance_term * 0.4, 2)


def estimated_yield_after_fees(
    avg_epoch_rewards: Optional[float],
    total_mev_rewards: Optional[float],
    epochs_active: int,
    stake_amount: float,
    commission_rate: float,
    epochs_per_year: int = 73,
) -> Optional[float]:
    """Annual net yield in percent, rounded to 2 dp."""
    if stake_amount <= 0 or (avg_epoch_rewards is None and total_mev_rewards is None):
        return None

    base_yield = (avg_epoch_rewards or 0.0) * epochs_per_year / stake_amount * 100.0
    mev_per_epoch = (total_mev_rewards or 0.0) / max(1, epochs_active)
    mev_yield = mev_per_epoch * epochs_per_year / stake_amount * 100.0

    return round((base_yield + mev_yield) * (1.0 - commission_rate / 100.0), 2)


# ── Market position ────────────────────────────────────────────────────────────

def market_distribution(commissions: list[float]) -> Optional[MarketDistribution]:
    """Quartile cut points of a commission population (linear interpolation)."""
    if not commissions:
        return None
    if len(commissions) == 1:
        only = commissions[0]
        return MarketDistribution(only, only, only, only, only, 1)
    p25, median, p75 = statistics.quantiles(commissions, n=4, method="inclusive")
    return MarketDistribution(
        average=statistics.fmean(commissions),
        median=median,
        p25=p25,
        p75=p75,
        minimum=min(commissions),
        count=len(commissions),
    )


def competitiveness_rating(position: float) -> CompetitivenessRating:
    if position <= 10:
        return "Highly Competitive"
    if position <= 25:
        return "Very Competitive"
    if position <= 50:
        return "Competitive"
    if position <= 75:
        return "Average"
    return "Above Average Cost"


def compare_to_market(commission_rate: float, market: MarketDistribution) -> MarketComparison:
    """Map a commission onto the population's quartiles.

    Positions: at or below the population minimum → 10, ≤ p25 → 25,
    ≤ median → 37.5, ≤ p75 → 62.5, otherwise 87.5.
    """
    if commission_rate <= market.minimum:
        position = 10.0
    elif commission_rate <= market.p25:
        position = 25.0
    elif commission_rate <= market.median:
        position = 37.5
    elif commission_rate <= market.p75:
        position = 62.5
    else:
        position = 87.5

    return MarketComparison(
        market_position=position,
        market_average=round(market.average, 2),
        market_median=round(market.median, 2),
        market_p25=round(market.p25, 2),
        market_p75=round(market.p75, 2),
        difference_from_average=round(commission_rate - market.average, 2),
        competitiveness_rating=competitiveness_rating(position),
        total_validators_compared=market.count,
    )
