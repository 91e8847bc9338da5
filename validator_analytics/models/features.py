"""
Feature vectors produced by the data gatherer.

``ValidatorFeatureVector`` is an immutable snapshot built fresh every scoring
cycle. History that is missing stays ``None`` (never zero-filled) and
calculators decide explicitly what an absent value means.

``InsufficientData`` is the explicit marker returned instead of a vector when a
validator has fewer active epochs than the configured minimum.
"""

from __future__ import annotations

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

CompetitivenessRating = Literal[
    "Highly Competitive",
    "Very Competitive",
    "Competitive",
    "Average",
    "Above Average Cost",
]

TrendDirection = Literal["increasing", "decreasing", "stable", "insufficient_data"]


class EpochWindow(BaseModel):
    """Inclusive epoch range. ``None`` bounds mean "latest N epochs"."""

    model_config = ConfigDict(frozen=True)

    start_epoch: Optional[int] = None
    end_epoch: Optional[int] = None

    @field_validator("end_epoch")
    @classmethod
    def validate_order(cls, v: Optional[int], info) -> Optional[int]:
        start = info.data.get("start_epoch")
        if v is not None and start is not None and v < start:
            raise ValueError(f"end_epoch ({v}) must be >= start_epoch ({start}).")
        return v


class ValidatorFeatureVector(BaseModel):
    """Per-validator features for one scoring cycle.

    Attributes:
        validator_id: Vote account.
        window_start / window_end: Epoch bounds actually covered by history.
        commission_rate: Current commission (percent).
        epochs_active: Active epochs from the master record.
        stake_amount: Current activated stake.
        is_mev_enabled / category: Cohort and grouping labels.
        avg_commission_rate, commission_variance, commission_changes,
        min_commission, max_commission: Commission history stats, ``None``
            when there is no history in the window.
        history_epochs: Number of commission observations in the window.
        avg_epoch_rewards, avg_uptime, avg_vote_credits, reward_variance:
            Performance stats, ``None`` when there is no performance history.
        performance_epochs: Number of performance observations in the window.
        total_mev_rewards, avg_mev_per_epoch, mev_consistency: MEV stats,
            ``None`` when no aggregate exists.
        performance_ratio: Performance delivered per commission point.
        stability: 0–1 commission stability (0.5 under sparse history).
        estimated_yield_after_fees: Annualized net yield in percent, ``None``
            when stake is unknown.
    """

    model_config = ConfigDict(frozen=True)

    validator_id: str
    window_start: Optional[int] = None
    window_end: Optional[int] = None

    commission_rate: float
    epochs_active: int
    stake_amount: float = 0.0
    is_mev_enabled: bool = False
    category: Optional[str] = None

    avg_commission_rate: Optional[float] = None
    commission_variance: Optional[float] = None
    commission_changes: Optional[int] = None
    min_commission: Optional[float] = None
    max_commission: Optional[float] = None
    history_epochs: int = 0

    avg_epoch_rewards: Optional[float] = None
    avg_uptime: Optional[float] = None
    avg_vote_credits: Optional[float] = None
    reward_variance: Optional[float] = None
    performance_epochs: int = 0

    total_mev_rewards: Optional[float] = None
    avg_mev_per_epoch: Optional[float] = None
    mev_consistency: Optional[float] = None

    performance_ratio: float = 0.0
    stability: float = 0.5
    estimated_yield_after_fees: Optional[float] = None

    @field_validator("stability")
    @classmethod
    def validate_stability(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"stability must be within [0, 1], got {v}.")
        return v

    @field_validator("commission_rate")
    @classmethod
    def validate_commission(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError(f"commission_rate must be within [0, 100], got {v}.")
        return v


class InsufficientData(BaseModel):
    """Explicit marker for a validator below the epoch-coverage minimum."""

    model_config = ConfigDict(frozen=True)

    validator_id: str
    epochs_active: int
    minimum_epochs: int
    commission_rate: Optional[float] = None
    stake_amount: float = 0.0
    is_mev_enabled: bool = False
    category: Optional[str] = None
    reason: str = "epochs_active below minimum"


GatherResult = Union[ValidatorFeatureVector, InsufficientData]


class MarketComparison(BaseModel):
    """Commission position of one validator against the validator population."""

    model_config = ConfigDict(frozen=True)

    market_position: float
    market_average: float
    market_median: float
    market_p25: float
    market_p75: float
    difference_from_average: float
    competitiveness_rating: CompetitivenessRating
    total_validators_compared: int


class TrendAnalysis(BaseModel):
    """Direction of a validator's commission over its recent history."""

    model_config = ConfigDict(frozen=True)

    trend_direction: TrendDirection
    trend_strength: float = 0.0
    data_points: int = 0
    data_quality: Literal["good", "limited", "none"] = "none"
