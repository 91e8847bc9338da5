"""
Tests for validator_analytics/analysis/comparison.py.

What we test
------------
perform_comparison():
  - Cohorts of 3 and 3 with minimum 5 -> insufficient sample, sample sizes
    reported, no metrics or correlations; summary numerics are None.
  - ensure_reliable() raises ComparisonUnderpoweredError when underpowered.
  - Adequate cohorts produce metric comparisons and bounded correlations.
  - min_sample_size argument overrides the configured default.
  - Custom partition and labels are honoured.
  - Zero-variance cohorts with different means give an infinite t statistic;
    the summary still encodes as strict JSON with t_statistic None.
"""

from __future__ import annotations

import json
import math

import pytest

from validator_analytics.analysis.comparison import COMPARED_METRICS, perform_comparison
from validator_analytics.config import ComparisonConfig
from validator_analytics.errors import ComparisonUnderpoweredError

CONFIG = ComparisonConfig()


# ── Helpers ───────────────────────────────────────────────────────────────────

def _population(make_score, mev: int, standard: int):
    scores = []
    for i in range(mev):
        scores.append(make_score(
            validator_id=f"mev-{i}", is_mev_enabled=True,
            commission_rate=4.0 + i * 0.5, avg_uptime=99.0 - i * 0.3,
            estimated_yield_after_fees=7.5 - i * 0.2, total_mev_rewards=100.0 + i * 10,
        ))
    for i in range(standard):
        scores.append(make_score(
            validator_id=f"std-{i}", is_mev_enabled=False, mev_consistency=0.0,
            commission_rate=9.0 + i * 0.7, avg_uptime=96.0 - i * 0.5,
            estimated_yield_after_fees=5.0 - i * 0.3, total_mev_rewards=None,
        ))
    return scores


class TestUnderpowered:
    def test_three_vs_three_with_minimum_five(self, make_score):
        result = perform_comparison(_population(make_score, 3, 3), CONFIG, min_sample_size=5)
        assert result.sufficient_sample is False
        assert result.status == "insufficient_sample_size"
        assert result.sample_sizes == {"mev_enabled": 3, "standard": 3}
        assert result.metrics == []
        assert result.correlations == {}
        assert "Insufficient sample size" in result.message

    def test_summary_has_no_numbers(self, make_score):
        summary = perform_comparison(_population(make_score, 3, 3), CONFIG).summary()
        assert summary["mean_difference"] is None
        assert summary["variance_difference"] is None
        assert summary["correlation"] is None
        assert summary["significance"] is None
        assert summary["sample_sizes"] == {"mev_enabled": 3, "standard": 3}

    def test_ensure_reliable_raises(self, make_score):
        result = perform_comparison(_population(make_score, 3, 3), CONFIG)
        with pytest.raises(ComparisonUnderpoweredError) as exc_info:
            result.ensure_reliable()
        assert exc_info.value.minimum == 5

    def test_one_empty_cohort(self, make_score):
        result = perform_comparison(_population(make_score, 6, 0), CONFIG)
        assert result.sufficient_sample is False


class TestAdequateSample:
    def test_metrics_reported(self, make_score):
        result = perform_comparison(_population(make_score, 6, 6), CONFIG)
        assert result.sufficient_sample is True
        assert result.ensure_reliable() is result
        assert {m.metric for m in result.metrics} == set(COMPARED_METRICS)

    def test_mev_cohort_cheaper(self, make_score):
        result = perform_comparison(_population(make_score, 6, 6), CONFIG)
        commission = result.metric("commission_rate")
        assert commission.mean_difference < 0
        assert commission.significant is True
        assert any("commission" in line for line in result.insights)

    def test_correlations_bounded(self, make_score):
        result = perform_comparison(_population(make_score, 6, 6), CONFIG)
        assert set(result.correlations) == {"commission_vs_score", "uptime_vs_score", "mev_vs_yield"}
        for value in result.correlations.values():
            assert -1.0 <= value <= 1.0
        # cheaper validators score higher
        assert result.correlations["commission_vs_score"] < 0

    def test_summary_numbers(self, make_score):
        summary = perform_comparison(_population(make_score, 6, 6), CONFIG).summary()
        assert summary["status"] == "ok"
        assert summary["mean_difference"] is not None
        assert summary["significance"]["significant"] in (True, False)

    def test_min_sample_override(self, make_score):
        result = perform_comparison(_population(make_score, 3, 3), CONFIG, min_sample_size=3)
        assert result.sufficient_sample is True

    def test_separated_flat_cohorts_encode_as_strict_json(self, make_score):
        scores = [
            make_score(validator_id=f"mev-{i}", is_mev_enabled=True, commission_rate=4.0)
            for i in range(5)
        ] + [
            make_score(
                validator_id=f"std-{i}", is_mev_enabled=False, mev_consistency=0.0,
                commission_rate=9.0, total_mev_rewards=None,
            )
            for i in range(5)
        ]
        result = perform_comparison(scores, CONFIG)
        assert math.isinf(result.metric("composite_score").t_statistic)

        summary = result.summary()
        assert summary["significance"]["t_statistic"] is None
        assert summary["significance"]["significant"] is True
        assert summary["significance"]["p_value"] == 0.0
        decoded = json.loads(json.dumps(summary, allow_nan=False))
        assert decoded["significance"]["t_statistic"] is None


class TestCustomPartition:
    def test_labels_and_partition(self, make_score):
        scores = _population(make_score, 3, 3)
        result = perform_comparison(
            scores,
            CONFIG,
            min_sample_size=2,
            partition=lambda s: s.commission_rate < 9.0,
            labels=("low_fee", "high_fee"),
        )
        assert result.cohort_a == "low_fee"
        assert result.sample_sizes == {"low_fee": 3, "high_fee": 3}
