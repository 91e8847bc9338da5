"""
Validator storage records: what the storage collaborator hands us.

Four record types mirror the four query families the gatherer consumes:
  1. ``ValidatorRecord``     : master record (current commission, stake, flags).
  2. ``CommissionRecord``    : one commission observation per epoch.
  3. ``EpochPerformance``    : rewards / uptime / vote credits per epoch.
  4. ``MevAggregate``        : historical MEV totals and consistency.

All records are frozen. Commission values are percentages in [0, 100].
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


def _check_commission(v: Optional[float]) -> Optional[float]:
    if v is not None and not 0.0 <= v <= 100.0:
        raise ValueError(f"commission_rate must be within [0, 100], got {v}.")
    return v


class ValidatorRecord(BaseModel):
    """Validator master record.

    Attributes:
        vote_account: Validator identity (vote account address).
        name: Optional display name.
        commission_rate: Current commission in percent.
        epochs_active: Number of epochs the validator has been active.
        stake_amount: Currently activated stake (native units).
        uptime_percentage: Latest reported uptime, or ``None`` if unknown.
        is_mev_enabled: Whether the validator runs an MEV-enabled client.
        category: Free-form grouping label (data center, region, client), or ``None``.
    """

    model_config = ConfigDict(frozen=True)

    vote_account: str
    name: Optional[str] = None
    commission_rate: float
    epochs_active: int = 0
    stake_amount: float = 0.0
    uptime_percentage: Optional[float] = None
    is_mev_enabled: bool = False
    category: Optional[str] = None

    @field_validator("commission_rate")
    @classmethod
    def validate_commission(cls, v: float) -> float:
        return _check_commission(v)

    @field_validator("epochs_active")
    @classmethod
    def validate_epochs(cls, v: int) -> int:
        if v < 0:
            raise ValueError("epochs_active must be non-negative.")
        return v


class CommissionRecord(BaseModel):
    """Commission rate observed at one epoch."""

    model_config = ConfigDict(frozen=True)

    validator_id: str
    epoch_number: int
    commission_rate: float

    @field_validator("commission_rate")
    @classmethod
    def validate_commission(cls, v: float) -> float:
        return _check_commission(v)


class EpochPerformance(BaseModel):
    """Per-epoch performance record."""

    model_config = ConfigDict(frozen=True)

    validator_id: str
    epoch_number: int
    epoch_rewards: float = 0.0
    uptime: Optional[float] = None
    vote_credits: Optional[float] = None
    stake_amount: Optional[float] = None


class MevAggregate(BaseModel):
    """Historical MEV aggregate for one validator.

    Attributes:
        total_mev_rewards: Sum of MEV payouts over the tracked history.
        avg_daily_mev: Average MEV per day.
        mev_consistency: 0–1 consistency of MEV payouts (1 = perfectly steady).
        epochs_covered: Epochs the aggregate spans, or ``None`` if unknown.
    """

    model_config = ConfigDict(frozen=True)

    validator_id: str
    total_mev_rewards: float = 0.0
    avg_daily_mev: float = 0.0
    mev_consistency: float = 0.0
    epochs_covered: Optional[int] = None

    @field_validator("mev_consistency")
    @classmethod
    def validate_consistency(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"mev_consistency must be within [0, 1], got {v}.")
        return v
