"""
Tests for validator_analytics/features/gatherer.py against a seeded database.

What we test
------------
gather():
  - Fully covered validator -> feature vector with history stats filled in.
  - Validator below min_epochs -> InsufficientData marker, logged with its
    validator_id as a context field.
  - Unknown validator -> LookupError.
  - Epoch window restricts history.
  - Missing MEV aggregate stays None (never zero-filled).

gather_many():
  - Preserves input order; empty input -> [].

Market comparison and trends:
  - Population quartiles from validators with enough epochs.
  - vote-d cut commission 12 -> 10: trend "decreasing".
  - No history -> "insufficient_data".
"""

from __future__ import annotations

import logging

import pytest

from validator_analytics.config import GatheringConfig
from validator_analytics.features.gatherer import DataGatherer, trend_from_buckets
from validator_analytics.models.features import (
    EpochWindow,
    InsufficientData,
    ValidatorFeatureVector,
)


@pytest.fixture
def gatherer(seeded_db) -> DataGatherer:
    return DataGatherer(seeded_db, GatheringConfig(max_workers=4))


class TestGather:
    def test_full_vector(self, gatherer):
        vector = gatherer.gather("vote-a")
        assert isinstance(vector, ValidatorFeatureVector)
        assert vector.history_epochs == 10
        assert vector.performance_epochs == 10
        assert vector.commission_changes == 0
        assert vector.stability == 1.0
        assert vector.avg_uptime == pytest.approx(99.5)
        assert vector.performance_ratio == pytest.approx(18.75)
        assert vector.estimated_yield_after_fees == pytest.approx(5.58)
        assert (vector.window_start, vector.window_end) == (600, 609)
        assert vector.category == "datacenter-eu"

    def test_commission_change_detected(self, gatherer):
        vector = gatherer.gather("vote-d")
        assert vector.commission_changes == 1
        assert vector.stability == pytest.approx(0.92)

    def test_missing_mev_stays_none(self, gatherer):
        vector = gatherer.gather("vote-b")
        assert vector.total_mev_rewards is None
        assert vector.mev_consistency is None

    def test_insufficient_marker(self, gatherer, caplog):
        with caplog.at_level(logging.DEBUG, logger="validator_analytics.features.gatherer"):
            result = gatherer.gather("vote-e")
        assert any(getattr(r, "validator_id", None) == "vote-e" for r in caplog.records)
        assert isinstance(result, InsufficientData)
        assert result.epochs_active == 3
        assert result.minimum_epochs == 5
        assert result.commission_rate == 6.0

    def test_unknown_validator(self, gatherer):
        with pytest.raises(LookupError):
            gatherer.gather("ghost")

    def test_window(self, gatherer):
        vector = gatherer.gather("vote-d", EpochWindow(start_epoch=605, end_epoch=609))
        assert vector.history_epochs == 5
        assert vector.commission_changes == 0
        assert vector.avg_commission_rate == 10.0
        assert vector.window_start == 605


class TestGatherMany:
    def test_order_preserved(self, gatherer):
        ids = ["vote-f", "vote-c", "vote-a", "vote-e", "vote-d", "vote-b"]
        results = gatherer.gather_many(ids)
        assert [r.validator_id for r in results] == ids
        assert isinstance(results[0], InsufficientData)
        assert isinstance(results[1], ValidatorFeatureVector)

    def test_empty(self, gatherer):
        assert gatherer.gather_many([]) == []

    def test_list_ids(self, gatherer):
        assert gatherer.list_validator_ids() == [f"vote-{c}" for c in "abcdef"]

    def test_unknown_id_propagates(self, gatherer):
        with pytest.raises(LookupError):
            gatherer.gather_many(["vote-a", "ghost"])


class TestMarketAndTrends:
    def test_market_distribution(self, gatherer):
        market = gatherer.load_market_distribution()
        assert market.count == 4
        assert market.median == pytest.approx(6.5)

    def test_market_comparison(self, gatherer):
        comparison = gatherer.get_market_comparison(gatherer.gather("vote-c"))
        assert comparison.market_position == 10.0
        assert comparison.competitiveness_rating == "Highly Competitive"

    def test_market_comparison_empty_population(self, file_db, make_vector):
        empty = DataGatherer(file_db, GatheringConfig())
        assert empty.get_market_comparison(make_vector()) is None

    def test_decreasing_trend(self, gatherer):
        trend = gatherer.analyze_trends("vote-d")
        assert trend.trend_direction == "decreasing"
        assert trend.trend_strength == pytest.approx(2.0)
        assert trend.data_points == 5
        assert trend.data_quality == "good"

    def test_stable_trend(self, gatherer):
        assert gatherer.analyze_trends("vote-a").trend_direction == "stable"

    def test_no_history(self, gatherer):
        trend = gatherer.analyze_trends("vote-e")
        assert trend.trend_direction == "insufficient_data"
        assert trend.data_quality == "none"

    def test_two_buckets_limited(self):
        trend = trend_from_buckets([("2026-01", 5.0, 3), ("2026-02", 7.0, 3)])
        assert trend.trend_direction == "increasing"
        assert trend.data_quality == "limited"
