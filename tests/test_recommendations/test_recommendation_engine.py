"""
Tests for validator_analytics/recommendations/engine.py.

What we test
------------
get_personalized_recommendations():
  - Default user (no stored profile) gets the balanced strategy.
  - count=0 -> empty list without touching the score store.
  - Negative count -> ValidationError; count above max_count is capped.
  - Blacklisted validators never appear; favorites get a small bonus.
  - Risk filters drop high commission, low confidence and heavy stake.
  - Unknown strategy falls back to balanced.
  - Second call is served from cache; refresh_cache recomputes.
  - Blacklist and favorite edits apply on the next call, even when cached.
  - No published snapshot -> empty list, "no_rankings", nothing cached.
  - Corrupt cache entry -> recomputed directly, "cache_bypassed"; the warning
    carries the user_id context field.
  - Concurrent identical requests compute the ranking once.

clear_user_cache():
  - Drops only that user's entries.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from validator_analytics.config import RankingConfig, RecommendationConfig
from validator_analytics.errors import ValidationError
from validator_analytics.models.recommendation import (
    RecommendationOptions,
    UserDelegationProfile,
)
from validator_analytics.recommendations.engine import RecommendationEngine
from validator_analytics.recommendations.profiles import resolve_preferences

CONFIG = RecommendationConfig()


# ── Helpers ───────────────────────────────────────────────────────────────────

class FakeStore:
    """In-memory stand-in for ``SnapshotStore``."""

    def __init__(self, scores, profiles=None, snapshot_id=1, release=None):
        self.scores = scores
        self.profiles = profiles or {}
        self.snapshot_id = snapshot_id
        self.release = release
        self.score_calls = 0

    def latest_scores(self):
        self.score_calls += 1
        if self.release is not None:
            self.release.wait(5.0)
        if self.snapshot_id is None:
            return None, []
        return self.snapshot_id, list(self.scores)

    def get_profile(self, user_id):
        return self.profiles.get(user_id)


@pytest.fixture
def population(make_score):
    """Ten small validators ordered by commission, plus three that filters catch."""
    scores = [
        make_score(
            validator_id=f"vote-{i:02d}",
            commission_rate=3.0 + i * 0.5,
            stake_amount=1_000.0,
            is_mev_enabled=(i % 2 == 0),
            category="eu" if i < 5 else "us",
        )
        for i in range(10)
    ]
    scores.append(make_score(validator_id="vote-high", commission_rate=12.0, stake_amount=1_000.0))
    scores.append(make_score(
        insufficient=True, validator_id="vote-new", commission_rate=5.0, stake_amount=1_000.0,
    ))
    scores.append(make_score(validator_id="vote-whale", commission_rate=4.0, stake_amount=400_000.0))
    return scores


def _engine(store, config=CONFIG):
    return RecommendationEngine(store, config, RankingConfig())


def _ids(result):
    return [r.validator_id for r in result.recommendations]


class TestDefaults:
    def test_default_user_gets_balanced(self, population):
        result = _engine(FakeStore(population)).get_personalized_recommendations("nobody")
        assert result.strategy_used == "balanced"
        assert result.risk_tolerance == "balanced"
        assert result.data_quality == "fresh"
        assert result.from_cache is False
        assert result.snapshot_id == 1
        assert _ids(result)[0] == "vote-00"
        assert [r.rank for r in result.recommendations] == list(range(1, 11))

    def test_ordered_by_adjusted_score(self, population):
        result = _engine(FakeStore(population)).get_personalized_recommendations("nobody")
        keys = [(-r.adjusted_score, r.validator_id) for r in result.recommendations]
        assert keys == sorted(keys)

    def test_summary_fields(self, population):
        result = _engine(FakeStore(population)).get_personalized_recommendations(
            "nobody", RecommendationOptions(count=3)
        )
        assert len(result.recommendations) == 3
        assert result.total_found == 10
        assert result.average_confidence == 100.0
        assert result.performance_projection == pytest.approx(7.0)
        assert result.ttl_seconds == CONFIG.cache_ttl_seconds
        # three picks is below the diversification minimum
        assert any(s.kind == "validator_count" for s in result.diversification_suggestions)

    def test_unknown_strategy(self, population):
        result = _engine(FakeStore(population)).get_personalized_recommendations(
            "nobody", RecommendationOptions(strategy="foo")
        )
        assert result.strategy_used == "balanced"
        assert len(result.recommendations) > 0


class TestCount:
    def test_zero_count(self, population):
        store = FakeStore(population)
        result = _engine(store).get_personalized_recommendations(
            "nobody", RecommendationOptions(count=0)
        )
        assert result.recommendations == []
        assert result.data_quality == "fresh"
        assert store.score_calls == 0

    def test_negative_count(self, population):
        with pytest.raises(ValidationError):
            _engine(FakeStore(population)).get_personalized_recommendations(
                "nobody", RecommendationOptions(count=-1)
            )

    def test_count_capped(self, population):
        config = RecommendationConfig(default_count=2, max_count=4)
        result = _engine(FakeStore(population), config).get_personalized_recommendations(
            "nobody", RecommendationOptions(count=100)
        )
        assert len(result.recommendations) == 4


class TestFilters:
    def test_blacklist(self, population):
        profiles = {"u": UserDelegationProfile(user_id="u", blacklist=frozenset({"vote-00"}))}
        result = _engine(FakeStore(population, profiles)).get_personalized_recommendations("u")
        assert "vote-00" not in _ids(result)
        assert _ids(result)[0] == "vote-01"

    def test_favorite_bonus(self, population):
        profiles = {"u": UserDelegationProfile(user_id="u", favorites=frozenset({"vote-01"}))}
        result = _engine(FakeStore(population, profiles)).get_personalized_recommendations("u")
        top = result.recommendations[0]
        assert top.validator_id == "vote-01"
        assert top.is_favorite is True
        assert top.adjusted_score == pytest.approx(top.composite_score + CONFIG.favorite_bonus)

    def test_balanced_risk_filters(self, population):
        ids = _ids(_engine(FakeStore(population)).get_personalized_recommendations("nobody"))
        assert "vote-high" not in ids      # commission above 10
        assert "vote-new" not in ids       # confidence below 40
        assert "vote-whale" not in ids     # stake share above 3%

    def test_aggressive_risk_admits_more(self, population):
        result = _engine(FakeStore(population)).get_personalized_recommendations(
            "nobody", RecommendationOptions(risk_tolerance="aggressive", count=20)
        )
        assert result.strategy_used == "risk:aggressive"
        ids = _ids(result)
        assert "vote-high" in ids
        assert "vote-new" in ids
        assert "vote-whale" not in ids
        new = next(r for r in result.recommendations if r.validator_id == "vote-new")
        assert new.grade == "Insufficient Data"
        assert new.insufficient_data is True


class TestCaching:
    def test_second_call_cached(self, population):
        store = FakeStore(population)
        engine = _engine(store)
        first = engine.get_personalized_recommendations("nobody")
        second = engine.get_personalized_recommendations("nobody")
        assert second.data_quality == "cached"
        assert second.from_cache is True
        assert second.cached_at == first.cached_at
        assert _ids(second) == _ids(first)
        assert store.score_calls == 1

    def test_different_count_shares_entry(self, population):
        store = FakeStore(population)
        engine = _engine(store)
        engine.get_personalized_recommendations("nobody", RecommendationOptions(count=3))
        engine.get_personalized_recommendations("nobody", RecommendationOptions(count=7))
        assert store.score_calls == 1

    def test_refresh_cache(self, population):
        store = FakeStore(population)
        engine = _engine(store)
        engine.get_personalized_recommendations("nobody")
        result = engine.get_personalized_recommendations(
            "nobody", RecommendationOptions(refresh_cache=True)
        )
        assert result.data_quality == "fresh"
        assert store.score_calls == 2

    def test_strategies_cached_separately(self, population):
        engine = _engine(FakeStore(population))
        engine.get_personalized_recommendations("nobody")
        engine.get_personalized_recommendations(
            "nobody", RecommendationOptions(strategy="maximize_yield")
        )
        assert engine.get_cache_stats()["entries"] == 2

    def test_clear_user_cache(self, population):
        store = FakeStore(population)
        engine = _engine(store)
        engine.get_personalized_recommendations("alice")
        engine.get_personalized_recommendations("bob")
        assert engine.clear_user_cache("alice") == 1
        assert engine.get_personalized_recommendations("alice").data_quality == "fresh"
        assert engine.get_personalized_recommendations("bob").data_quality == "cached"

    def test_blacklist_edit_applies_to_cached_entry(self, population):
        store = FakeStore(population, {"u": UserDelegationProfile(user_id="u")})
        engine = _engine(store)
        assert _ids(engine.get_personalized_recommendations("u"))[0] == "vote-00"

        store.profiles["u"] = UserDelegationProfile(user_id="u", blacklist=frozenset({"vote-00"}))
        second = engine.get_personalized_recommendations("u")
        assert second.data_quality == "cached"
        assert "vote-00" not in _ids(second)
        assert second.recommendations[0].rank == 1
        assert store.score_calls == 1

    def test_favorite_edit_applies_to_cached_entry(self, population):
        store = FakeStore(population, {"u": UserDelegationProfile(user_id="u")})
        engine = _engine(store)
        first = engine.get_personalized_recommendations("u")
        assert not any(r.is_favorite for r in first.recommendations)

        store.profiles["u"] = UserDelegationProfile(user_id="u", favorites=frozenset({"vote-03"}))
        second = engine.get_personalized_recommendations("u")
        assert second.data_quality == "cached"
        fav = next(r for r in second.recommendations if r.validator_id == "vote-03")
        assert fav.is_favorite is True
        assert fav.adjusted_score == pytest.approx(fav.composite_score + CONFIG.favorite_bonus)
        assert store.score_calls == 1


class TestDegradedPaths:
    def test_no_published_snapshot(self, population):
        store = FakeStore(population, snapshot_id=None)
        engine = _engine(store)
        result = engine.get_personalized_recommendations("nobody")
        assert result.recommendations == []
        assert result.data_quality == "no_rankings"
        assert result.snapshot_id is None
        assert engine.get_cache_stats()["entries"] == 0

        store.snapshot_id = 7
        result = engine.get_personalized_recommendations("nobody")
        assert result.snapshot_id == 7
        assert result.data_quality == "fresh"

    def test_corrupt_entry_bypassed(self, population, caplog):
        engine = _engine(FakeStore(population))
        prefs = resolve_preferences(
            UserDelegationProfile.default("nobody"), RecommendationOptions(), CONFIG, 0.01
        )
        engine.cache.set(prefs.cache_key("nobody"), {"not": "a ranking"})

        with caplog.at_level(logging.WARNING, logger="validator_analytics.recommendations.engine"):
            result = engine.get_personalized_recommendations("nobody")
        assert result.data_quality == "cache_bypassed"
        bypass = [r for r in caplog.records if "Bypassing cache" in r.getMessage()]
        assert bypass and bypass[0].user_id == "nobody"
        assert _ids(result)[0] == "vote-00"
        assert engine.get_personalized_recommendations("nobody").data_quality == "fresh"


class TestConcurrency:
    def test_identical_requests_compute_once(self, population):
        release = threading.Event()
        store = FakeStore(population, release=release)
        engine = _engine(store)
        callers = 6

        with ThreadPoolExecutor(max_workers=callers) as pool:
            futures = [
                pool.submit(engine.get_personalized_recommendations, "alice")
                for _ in range(callers)
            ]
            deadline = time.monotonic() + 5.0
            while engine.get_cache_stats()["waits"] < callers - 1:
                assert time.monotonic() < deadline, "followers never queued"
                time.sleep(0.005)
            release.set()
            results = [f.result(timeout=5.0) for f in futures]

        assert store.score_calls == 1
        assert len({tuple(_ids(r)) for r in results}) == 1
