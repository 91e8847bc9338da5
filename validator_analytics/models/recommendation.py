"""
Recommendation models: user profiles, request options and responses.

``UserDelegationProfile`` is what the profile store holds per user. A user with
no stored profile is represented by ``UserDelegationProfile.default(user_id)``
(balanced strategy, balanced risk, no favorites) rather than rejected.

``RecommendationResult`` is self-describing: it always states the
``strategy_used`` and a ``data_quality`` flag so degraded responses can be
told apart from fresh ones.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from validator_analytics.config import SUB_SCORE_NAMES
from validator_analytics.models.ranking import DEFAULT_WEIGHT_TOLERANCE

DataQuality = Literal["fresh", "cached", "stale", "cache_bypassed", "no_rankings"]
Impact = Literal["high", "medium", "low"]


class UserDelegationProfile(BaseModel):
    """Stored delegation preferences for one user.

    Attributes:
        user_id: Caller identity.
        strategy: Preferred strategy preset name.
        risk_tolerance: ``conservative`` / ``balanced`` / ``aggressive``.
        custom_weights: Optional weight vector (percent, sums to 100).
        favorites: Validator ids to lightly prioritize.
        blacklist: Validator ids never recommended.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    strategy: str = "balanced"
    risk_tolerance: str = "balanced"
    custom_weights: Optional[dict[str, float]] = None
    favorites: frozenset[str] = frozenset()
    blacklist: frozenset[str] = frozenset()
    updated_at: Optional[datetime] = None

    @field_validator("custom_weights")
    @classmethod
    def validate_custom_weights(
        cls, v: Optional[dict[str, float]]
    ) -> Optional[dict[str, float]]:
        if v is None:
            return v
        if set(v) != set(SUB_SCORE_NAMES):
            raise ValueError(
                f"custom_weights must name exactly {list(SUB_SCORE_NAMES)}, got {sorted(v)}."
            )
        total = sum(v.values())
        if abs(total - 100.0) > DEFAULT_WEIGHT_TOLERANCE:
            raise ValueError(f"custom_weights must sum to 100, got {total:.4f}.")
        return v

    @classmethod
    def default(cls, user_id: str) -> "UserDelegationProfile":
        return cls(user_id=user_id)


class RecommendationOptions(BaseModel):
    """Per-call options. Call-time values override the stored profile."""

    model_config = ConfigDict(frozen=True)

    count: Optional[int] = None
    strategy: Optional[str] = None
    risk_tolerance: Optional[str] = None
    refresh_cache: bool = False


class RecommendedValidator(BaseModel):
    """One recommended validator."""

    model_config = ConfigDict(frozen=True)

    rank: int
    validator_id: str
    composite_score: float
    adjusted_score: float
    grade: str
    confidence_level: float
    commission_rate: Optional[float] = None
    estimated_yield_after_fees: Optional[float] = None
    stake_amount: float = 0.0
    is_mev_enabled: bool = False
    category: Optional[str] = None
    is_favorite: bool = False
    insufficient_data: bool = False


class DiversificationSuggestion(BaseModel):
    """A concentration warning with alternates from under-represented bands."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[
        "validator_count",
        "commission_concentration",
        "category_concentration",
        "mev_balance",
        "stake_concentration",
    ]
    message: str
    impact: Impact
    alternates: list[str] = Field(default_factory=list)


class RecommendationResult(BaseModel):
    """Personalized recommendation response."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    strategy_used: str
    risk_tolerance: str
    weights: dict[str, float]
    recommendations: list[RecommendedValidator]
    diversification_suggestions: list[DiversificationSuggestion] = Field(
        default_factory=list
    )
    total_found: int = 0
    generated_at: datetime
    cached_at: Optional[datetime] = None
    ttl_seconds: float = 0.0
    from_cache: bool = False
    data_quality: DataQuality = "fresh"
    average_confidence: Optional[float] = None
    snapshot_id: Optional[int] = None
    performance_projection: Optional[float] = None
