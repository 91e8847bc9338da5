"""
Tests for validator_analytics/scoring/scorer.py.

What we test
------------
score_full():
  - Produces a bounded composite, confidence and letter grade.
  - Raises InsufficientDataError below the epoch minimum.
  - Custom weights change the composite.
  - Weight vectors off 100, partial or empty -> ValidationError.

insufficient_data_score():
  - 5% commission, 2 epochs -> composite 50, confidence 5, "Insufficient Data".
  - Never receives a letter grade; confidence capped at 25.

score_validator():
  - InsufficientData marker and under-covered vectors both take the fallback.

reweight():
  - Fallback scores are unchanged; full scores get a new composite and grade.
  - Malformed weight vectors are rejected for both kinds of score.
"""

from __future__ import annotations

import pytest

from validator_analytics.config import ScoringConfig
from validator_analytics.errors import InsufficientDataError, ValidationError
from validator_analytics.models.features import InsufficientData
from validator_analytics.models.score import INSUFFICIENT_DATA_GRADE
from validator_analytics.scoring.scorer import (
    insufficient_data_score,
    reweight,
    score_full,
    score_validator,
)

CONFIG = ScoringConfig()

YIELD_HEAVY = {
    "rate_competitiveness": 10.0,
    "performance_ratio": 10.0,
    "commission_stability": 10.0,
    "value_proposition": 10.0,
    "yield_after_fees": 60.0,
}

# Right proportions, but sums to 200.
DOUBLED = {
    "rate_competitiveness": 70.0,
    "performance_ratio": 50.0,
    "commission_stability": 40.0,
    "value_proposition": 24.0,
    "yield_after_fees": 16.0,
}


class TestScoreFull:
    def test_reference_score(self, make_vector):
        score = score_full(make_vector(), CONFIG, min_epochs=5)
        assert score.composite_score == pytest.approx(96.13)
        assert score.confidence_level == 100.0
        assert score.grade == "A+"
        assert score.insufficient_data is False

    def test_carries_supporting_metrics(self, make_vector):
        score = score_full(make_vector(category="eu"), CONFIG, min_epochs=5)
        assert score.commission_rate == 5.0
        assert score.epochs_analyzed == 60
        assert score.category == "eu"
        assert score.uptime == 99.0

    def test_below_minimum_raises(self, make_vector):
        with pytest.raises(InsufficientDataError) as exc_info:
            score_full(make_vector(epochs_active=3), CONFIG, min_epochs=5)
        assert exc_info.value.minimum == 5

    def test_custom_weights(self, make_vector):
        default = score_full(make_vector(), CONFIG, min_epochs=5)
        custom = score_full(make_vector(), CONFIG, min_epochs=5, weights=YIELD_HEAVY)
        assert custom.composite_score != default.composite_score
        assert custom.sub_scores == default.sub_scores


class TestInsufficientDataScore:
    def test_reference_fallback(self):
        score = insufficient_data_score("vote-new", 5.0, 2, CONFIG)
        assert score.composite_score == 50.0
        assert score.confidence_level == 5.0
        assert score.grade == INSUFFICIENT_DATA_GRADE
        assert score.insufficient_data is True

    def test_confidence_capped(self):
        score = insufficient_data_score("vote-new", 0.0, 40, CONFIG)
        assert score.confidence_level <= 25.0
        assert score.composite_score <= 50.0

    def test_high_commission_hits_floor(self):
        score = insufficient_data_score("vote-new", 100.0, 0, CONFIG)
        assert score.composite_score == 10.0
        assert score.sub_scores.rate_competitiveness == 0.0


class TestScoreValidator:
    def test_marker_takes_fallback(self):
        marker = InsufficientData(
            validator_id="vote-new", epochs_active=2, minimum_epochs=5,
            commission_rate=5.0, is_mev_enabled=True,
        )
        score = score_validator(marker, CONFIG, min_epochs=5)
        assert score.grade == INSUFFICIENT_DATA_GRADE
        assert score.confidence_level <= 25.0
        assert score.is_mev_enabled is True

    def test_under_covered_vector_takes_fallback(self, make_vector):
        score = score_validator(make_vector(epochs_active=2), CONFIG, min_epochs=5)
        assert score.insufficient_data is True
        assert score.composite_score == 50.0

    def test_covered_vector_takes_full_path(self, make_vector):
        score = score_validator(make_vector(), CONFIG, min_epochs=5)
        assert score.insufficient_data is False


class TestReweight:
    def test_fallback_unchanged(self, make_score):
        fallback = make_score(insufficient=True)
        assert reweight(fallback, YIELD_HEAVY) is fallback

    def test_full_score_recomputed(self, make_score):
        full = make_score()
        moved = reweight(full, YIELD_HEAVY)
        # 10% each of 100, 100, 93.25, 87.35 plus 60% of 87.5
        assert moved.composite_score == pytest.approx(90.56)
        assert moved.grade == "A+"
        assert moved.validator_id == full.validator_id

    @pytest.mark.parametrize("weights", [DOUBLED, {"rate_competitiveness": 100.0}, {}])
    def test_malformed_weights_rejected(self, make_score, weights):
        with pytest.raises(ValidationError):
            reweight(make_score(), weights)
        with pytest.raises(ValidationError):
            reweight(make_score(insufficient=True), weights)


class TestScoreFullWeights:
    def test_sum_off_100_rejected(self, make_vector):
        with pytest.raises(ValidationError, match="sum to 100"):
            score_full(make_vector(), CONFIG, min_epochs=5, weights=DOUBLED)

    def test_missing_name_rejected(self, make_vector):
        with pytest.raises(ValidationError, match="Missing"):
            score_full(make_vector(), CONFIG, min_epochs=5, weights={"rate_competitiveness": 100.0})

    def test_empty_mapping_not_treated_as_default(self, make_vector):
        with pytest.raises(ValidationError):
            score_full(make_vector(), CONFIG, min_epochs=5, weights={})

    def test_within_tolerance_accepted(self, make_vector):
        nudged = {**YIELD_HEAVY, "yield_after_fees": 60.005}
        score = score_full(make_vector(), CONFIG, min_epochs=5, weights=nudged)
        assert 0.0 <= score.composite_score <= 100.0
