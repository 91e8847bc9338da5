"""
Preference resolution: stored profile + call-time options → effective weights.

Precedence (first match wins)
-----------------------------
1. Call-time ``strategy``          → that preset's weights
2. Call-time ``risk_tolerance``    → that risk profile's weights,
                                     ``strategy_used = "risk:<name>"``
3. Stored ``custom_weights``       → used as-is, ``strategy_used = "custom"``
4. Stored ``strategy``             → that preset's weights
5. ``balanced`` preset

A call-time risk tolerance replaces the stored strategy or custom weights for
that request only; the ``risk:`` label keeps its results (and cache entries)
distinct from a genuine ``balanced`` request.

Unknown strategy or risk names never raise: they fall back to ``balanced`` and
the resolved ``strategy_used`` / ``risk_tolerance`` always name what was
actually applied.

The risk profile (call-time, else stored, else ``balanced``) also supplies the
candidate filters. The effective stake-share cap is the tighter of the risk
profile's and the strategy's.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from validator_analytics.config import RecommendationConfig
from validator_analytics.models.ranking import WeightVector
from validator_analytics.models.recommendation import (
    RecommendationOptions,
    UserDelegationProfile,
)

logger = logging.getLogger(__name__)

DEFAULT_STRATEGY = "balanced"
DEFAULT_RISK = "balanced"
CUSTOM_STRATEGY = "custom"
RISK_STRATEGY_PREFIX = "risk:"


@dataclass(frozen=True)
class ResolvedPreferences:
    """Everything a personalized ranking depends on.

    ``cache_key`` covers the weight- and risk-dependent part only; favorites and
    blacklist are applied per request on top of the cached candidates.
    """

    strategy_used: str
    risk_tolerance: str
    weights: WeightVector
    max_commission: float
    min_confidence: float
    max_stake_share: float
    favorites: frozenset[str]
    blacklist: frozenset[str]

    def cache_key(self, user_id: str) -> tuple[str, str, str, str]:
        return (user_id, self.strategy_used, self.risk_tolerance, self.weights.weight_hash())


def _known_strategy(name: Optional[str], config: RecommendationConfig) -> str:
    if name is None:
        return DEFAULT_STRATEGY
    if name not in config.strategies:
        logger.info("Unknown strategy '%s'; falling back to '%s'", name, DEFAULT_STRATEGY)
        return DEFAULT_STRATEGY
    return name


def _known_risk(name: Optional[str], config: RecommendationConfig) -> str:
    if name is None:
        return DEFAULT_RISK
    if name not in config.risk_profiles:
        logger.info("Unknown risk tolerance '%s'; falling back to '%s'", name, DEFAULT_RISK)
        return DEFAULT_RISK
    return name


def resolve_preferences(
    profile: UserDelegationProfile,
    options: RecommendationOptions,
    config: RecommendationConfig,
    tolerance: float,
) -> ResolvedPreferences:
    """Merge ``profile`` with call-time ``options``.

    Raises:
        ValidationError: A configured preset weight vector is malformed.
    """
    risk = _known_risk(
        options.risk_tolerance if options.risk_tolerance is not None else profile.risk_tolerance,
        config,
    )
    risk_profile = config.risk_profiles[risk]

    if options.strategy is not None:
        strategy = _known_strategy(options.strategy, config)
        weights = config.strategies[strategy].weights
    elif options.risk_tolerance is not None:
        strategy = f"{RISK_STRATEGY_PREFIX}{risk}"
        weights = risk_profile.weights
    elif profile.custom_weights is not None:
        strategy = CUSTOM_STRATEGY
        weights = profile.custom_weights
    else:
        strategy = _known_strategy(profile.strategy, config)
        weights = config.strategies[strategy].weights

    max_stake_share = risk_profile.max_stake_share
    preset = config.strategies.get(strategy)
    if preset is not None and preset.max_stake_share is not None:
        max_stake_share = min(max_stake_share, preset.max_stake_share)

    return ResolvedPreferences(
        strategy_used=strategy,
        risk_tolerance=risk,
        weights=WeightVector.from_mapping(weights, tolerance),
        max_commission=risk_profile.max_commission,
        min_confidence=risk_profile.min_confidence,
        max_stake_share=max_stake_share,
        favorites=profile.favorites,
        blacklist=profile.blacklist,
    )
