"""
Ranking models: weight vectors, ranking entries and whole rankings.

A ``Ranking`` is regenerated wholesale every scoring cycle and never patched.
Entries are stored in rank order; rank 1 is the best validator.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict

from validator_analytics.config import SUB_SCORE_NAMES
from validator_analytics.errors import ValidationError

DEFAULT_WEIGHT_TOLERANCE = 0.01


class WeightVector(BaseModel):
    """Percent weights over the five sub-scores. Always sums to 100.

    Build instances through ``from_mapping`` so malformed input raises
    ``validator_analytics.errors.ValidationError``.
    """

    model_config = ConfigDict(frozen=True)

    rate_competitiveness: float
    performance_ratio: float
    commission_stability: float
    value_proposition: float
    yield_after_fees: float

    @classmethod
    def from_mapping(
        cls,
        weights: Mapping[str, float],
        tolerance: float = DEFAULT_WEIGHT_TOLERANCE,
    ) -> "WeightVector":
        """Validate and build a weight vector.

        Raises:
            ValidationError: Unknown or missing sub-score names, negative
                weights, or a total outside ``100 ± tolerance``. The vector is
                never renormalized.
        """
        unknown = set(weights) - set(SUB_SCORE_NAMES)
        if unknown:
            raise ValidationError(f"Unknown weight names: {sorted(unknown)}.")
        missing = set(SUB_SCORE_NAMES) - set(weights)
        if missing:
            raise ValidationError(f"Missing weight names: {sorted(missing)}.")

        values = {name: float(weights[name]) for name in SUB_SCORE_NAMES}
        negative = [name for name, v in values.items() if v < 0]
        if negative:
            raise ValidationError(f"Weights must be non-negative: {sorted(negative)}.")

        total = sum(values.values())
        if abs(total - 100.0) > tolerance:
            raise ValidationError(
                f"Weights must sum to 100 (±{tolerance}), got {total:.4f}."
            )
        return cls(**values)

    def as_dict(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in SUB_SCORE_NAMES}

    def weight_hash(self) -> str:
        """Stable 16-char digest of the weights, used in cache keys."""
        payload = json.dumps(self.as_dict(), sort_keys=True)
        return hashlib.sha256(payload.encode()).hexdigest()[:16]


class RankingEntry(BaseModel):
    """One validator's position in a ranking."""

    model_config = ConfigDict(frozen=True)

    validator_id: str
    rank: int
    composite_score: float
    grade: str
    percentile: float = 0.0
    confidence_level: float = 0.0
    insufficient_data: bool = False
    commission_rate: Optional[float] = None
    estimated_yield_after_fees: Optional[float] = None
    stake_amount: float = 0.0
    is_mev_enabled: bool = False
    category: Optional[str] = None
    metric_value: Optional[float] = None


class Ranking(BaseModel):
    """A complete, totally-ordered ranking for one category.

    Attributes:
        category: Ranking category label (``"overall"``, ``"cost"``, ...).
        entries: Entries in rank order.
        weights: Weight vector used, or ``None`` for metric categories.
        generated_at: UTC time the ranking was computed.
        snapshot_id: Snapshot the ranking was read from, if persisted.
    """

    model_config = ConfigDict(frozen=True)

    category: str
    entries: list[RankingEntry]
    weights: Optional[dict[str, float]] = None
    generated_at: datetime
    snapshot_id: Optional[int] = None

    @property
    def total_validators(self) -> int:
        return len(self.entries)


class RankingFilters(BaseModel):
    """Optional filters applied when reading a ranking."""

    model_config = ConfigDict(frozen=True)

    min_score: Optional[float] = None
    max_commission: Optional[float] = None
    min_confidence: Optional[float] = None
    mev_enabled: Optional[bool] = None
    exclude_insufficient_data: bool = False

    def accepts(self, entry: RankingEntry) -> bool:
        if self.min_score is not None and entry.composite_score < self.min_score:
            return False
        if self.max_commission is not None and (
            entry.commission_rate is None or entry.commission_rate > self.max_commission
        ):
            return False
        if self.min_confidence is not None and entry.confidence_level < self.min_confidence:
            return False
        if self.mev_enabled is not None and entry.is_mev_enabled != self.mev_enabled:
            return False
        if self.exclude_insufficient_data and entry.insufficient_data:
            return False
        return True
