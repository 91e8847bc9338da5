"""
Personalized recommendation engine.

Request flow
------------
1. Load the user's profile (missing → balanced defaults) and resolve the
   effective weights, filters and risk tolerance.
2. Fetch the personalized candidate list from the injected
   ``SingleFlightCache`` under ``(user_id, strategy_used, risk_tolerance,
   weight_hash)``; on a miss it is computed once from the latest published
   score snapshot, however many callers ask concurrently.
3. Truncate to ``count`` and attach diversification suggestions.

Candidate list (what is cached)
-------------------------------
Every validator of the snapshot, re-ranked under the resolved weights, minus
those failing the risk filters (commission, confidence, stake share). All of
that is determined by the cache key.

Per request
-----------
Blacklisted validators are dropped and favorites get ``favorite_bonus`` added
to their score before the final sort; ties still break on validator id. The
profile is re-read on every call, so list edits apply immediately.

Degraded paths
--------------
- Corrupt cache entry  → recompute directly, ``data_quality="cache_bypassed"``.
- No published snapshot → empty list, ``data_quality="no_rankings"``; the
  computation raises ``NoPublishedSnapshot`` so nothing is cached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from validator_analytics.config import RankingConfig, RecommendationConfig
from validator_analytics.errors import CacheCorruptionError, ValidationError
from validator_analytics.models.recommendation import (
    DataQuality,
    RecommendationOptions,
    RecommendationResult,
    RecommendedValidator,
    UserDelegationProfile,
)
from validator_analytics.ranking.ranker import calculate_overall_ranking
from validator_analytics.recommendations.cache import SingleFlightCache
from validator_analytics.recommendations.diversification import suggest_diversification
from validator_analytics.recommendations.profiles import (
    ResolvedPreferences,
    resolve_preferences,
)
from validator_analytics.recommendations.store import RecommendationStore
from validator_analytics.utils.logging import run_fields
from validator_analytics.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class NoPublishedSnapshot(LookupError):
    """No published score snapshot exists yet."""


@dataclass(frozen=True)
class PersonalizedRanking:
    """Cached value: the ordered, filtered candidate list for one key."""

    candidates: tuple[RecommendedValidator, ...]
    snapshot_id: int
    total_stake: float
    computed_at: datetime


def new_recommendation_cache(config: RecommendationConfig) -> SingleFlightCache:
    return SingleFlightCache(
        default_ttl=config.cache_ttl_seconds,
        stale_grace=config.stale_grace_seconds,
        value_type=PersonalizedRanking,
    )


class RecommendationEngine:
    """Serves personalized, cached recommendations.

    Args:
        store: Source of published scores and user profiles.
        config: Recommendation settings (presets, filters, cache TTLs).
        ranking_config: Supplies the weight-sum tolerance.
        cache: Injected cache; a new one is built from ``config`` if omitted.
    """

    def __init__(
        self,
        store: RecommendationStore,
        config: RecommendationConfig,
        ranking_config: Optional[RankingConfig] = None,
        cache: Optional[SingleFlightCache] = None,
    ) -> None:
        self.store = store
        self.config = config
        self.tolerance = (ranking_config or RankingConfig()).weight_tolerance
        self.cache = cache if cache is not None else new_recommendation_cache(config)

    # ── Public API ─────────────────────────────────────────────────────────────

    def get_personalized_recommendations(
        self,
        user_id: str,
        options: Optional[RecommendationOptions] = None,
    ) -> RecommendationResult:
        """Top-``count`` validators for ``user_id``.

        Raises:
            ValidationError: Negative ``count``.
            CacheWaitTimeout: This caller waited longer than
                ``wait_timeout_seconds`` for an in-flight computation.
            StorageUnavailableError: The score or profile store failed.
        """
        options = options or RecommendationOptions()
        count = self.config.default_count if options.count is None else options.count
        if count < 0:
            raise ValidationError(f"count must be non-negative, got {count}.")
        count = min(count, self.config.max_count)

        profile = self.store.get_profile(user_id) or UserDelegationProfile.default(user_id)
        prefs = resolve_preferences(profile, options, self.config, self.tolerance)
        generated_at = utcnow()

        if count == 0:
            return self._result(user_id, prefs, [], [], 0, generated_at, None, "fresh", None)

        try:
            personalized, quality, cached_at = self._lookup(user_id, prefs, options)
        except NoPublishedSnapshot:
            return self._result(
                user_id, prefs, [], [], 0, generated_at, None, "no_rankings", None
            )

        candidates = self._personalize(personalized.candidates, prefs)
        top = candidates[:count]
        suggestions = suggest_diversification(
            top, candidates, personalized.total_stake, self.config
        )
        return self._result(
            user_id,
            prefs,
            top,
            suggestions,
            len(candidates),
            generated_at,
            cached_at,
            quality,
            personalized.snapshot_id,
        )

    def clear_user_cache(self, user_id: str) -> int:
        """Drop every cached entry for ``user_id``. Returns entries dropped."""
        dropped = self.cache.invalidate_prefix((user_id,))
        logger.info(
            "Cleared %d cached recommendation entries", dropped,
            extra=run_fields(user_id=user_id),
        )
        return dropped

    def get_cache_stats(self) -> dict[str, Any]:
        return self.cache.stats()

    # ── Internals ──────────────────────────────────────────────────────────────

    def _lookup(
        self,
        user_id: str,
        prefs: ResolvedPreferences,
        options: RecommendationOptions,
    ) -> tuple[PersonalizedRanking, DataQuality, Optional[datetime]]:
        try:
            lookup = self.cache.get_or_compute(
                prefs.cache_key(user_id),
                lambda: self._compute(prefs),
                ttl=self.config.cache_ttl_seconds,
                wait_timeout=self.config.wait_timeout_seconds,
                force_refresh=options.refresh_cache,
            )
        except CacheCorruptionError as exc:
            logger.warning(
                "Bypassing cache: %s", exc, extra=run_fields(user_id=user_id)
            )
            return self._compute(prefs), "cache_bypassed", None
        return lookup.value, lookup.status, lookup.cached_at

    def _compute(self, prefs: ResolvedPreferences) -> PersonalizedRanking:
        snapshot_id, scores = self.store.latest_scores()
        if snapshot_id is None:
            logger.warning("No published score snapshot; cannot build recommendations")
            raise NoPublishedSnapshot("no published score snapshot")

        ranking = calculate_overall_ranking(
            scores,
            prefs.weights.as_dict(),
            category="personalized",
            tolerance=self.tolerance,
        )
        total_stake = sum(s.stake_amount for s in scores)

        candidates = []
        for entry in ranking.entries:
            if entry.commission_rate is not None and entry.commission_rate > prefs.max_commission:
                continue
            if entry.confidence_level < prefs.min_confidence:
                continue
            if total_stake > 0 and entry.stake_amount / total_stake > prefs.max_stake_share:
                continue
            candidates.append(
                RecommendedValidator(
                    rank=len(candidates) + 1,
                    validator_id=entry.validator_id,
                    composite_score=entry.composite_score,
                    adjusted_score=entry.composite_score,
                    grade=entry.grade,
                    confidence_level=entry.confidence_level,
                    commission_rate=entry.commission_rate,
                    estimated_yield_after_fees=entry.estimated_yield_after_fees,
                    stake_amount=entry.stake_amount,
                    is_mev_enabled=entry.is_mev_enabled,
                    category=entry.category,
                    insufficient_data=entry.insufficient_data,
                )
            )
        logger.info(
            "Computed %d candidates (strategy=%s, risk=%s, snapshot=%d)",
            len(candidates), prefs.strategy_used, prefs.risk_tolerance, snapshot_id,
        )
        return PersonalizedRanking(tuple(candidates), snapshot_id, total_stake, utcnow())

    def _personalize(
        self,
        candidates: tuple[RecommendedValidator, ...],
        prefs: ResolvedPreferences,
    ) -> list[RecommendedValidator]:
        """Drop blacklisted ids, apply the favorite bonus and re-rank."""
        bonus = self.config.favorite_bonus
        eligible = []
        for c in candidates:
            if c.validator_id in prefs.blacklist:
                continue
            favorite = c.validator_id in prefs.favorites
            adjusted = c.composite_score + (bonus if favorite else 0.0)
            eligible.append((adjusted, c, favorite))

        eligible.sort(key=lambda item: (-item[0], item[1].validator_id))
        return [
            c.model_copy(update={
                "rank": i + 1,
                "adjusted_score": round(adjusted, 2),
                "is_favorite": favorite,
            })
            for i, (adjusted, c, favorite) in enumerate(eligible)
        ]

    def _result(
        self,
        user_id: str,
        prefs: ResolvedPreferences,
        top: list[RecommendedValidator],
        suggestions: list,
        total_found: int,
        generated_at: datetime,
        cached_at: Optional[datetime],
        quality: DataQuality,
        snapshot_id: Optional[int],
    ) -> RecommendationResult:
        yields = [
            r.estimated_yield_after_fees for r in top
            if r.estimated_yield_after_fees is not None
        ]
        return RecommendationResult(
            user_id=user_id,
            strategy_used=prefs.strategy_used,
            risk_tolerance=prefs.risk_tolerance,
            weights=prefs.weights.as_dict(),
            recommendations=top,
            diversification_suggestions=suggestions,
            total_found=total_found,
            generated_at=generated_at,
            cached_at=cached_at,
            ttl_seconds=self.config.cache_ttl_seconds,
            from_cache=quality in ("cached", "stale"),
            data_quality=quality,
            average_confidence=(
                round(sum(r.confidence_level for r in top) / len(top), 2) if top else None
            ),
            snapshot_id=snapshot_id,
            performance_projection=round(sum(yields) / len(yields), 4) if yields else None,
        )
