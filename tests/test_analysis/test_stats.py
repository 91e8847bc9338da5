"""
Tests for validator_analytics/analysis/stats.py.

What we test
------------
  - variance() is the population figure; sample_variance() divides by n − 1.
  - Volatility, Pearson bounds and degenerate inputs.
  - Welch t-test uses the sample estimator, including the zero-variance case.
"""

from __future__ import annotations

import math

import pytest

from validator_analytics.analysis.stats import (
    mean,
    normal_two_sided_p,
    pearson_correlation,
    sample_variance,
    variance,
    volatility,
    welch_t_test,
)


class TestDescriptive:
    def test_mean_empty(self):
        assert mean([]) == 0.0

    def test_population_variance(self):
        assert variance([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]) == pytest.approx(4.0)

    def test_sample_variance(self):
        assert sample_variance([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]) == pytest.approx(32 / 7)

    def test_variance_short_inputs(self):
        assert variance([]) == 0.0
        assert variance([3.0]) == 0.0
        assert sample_variance([3.0]) == 0.0

    def test_volatility_zero_mean(self):
        assert volatility([-1.0, 1.0]) == 0.0

    def test_volatility(self):
        assert volatility([1.0, 3.0]) == pytest.approx(0.5)


class TestPearson:
    def test_perfect_positive(self):
        assert pearson_correlation([1, 2, 3, 4], [2, 4, 6, 8]) == pytest.approx(1.0)

    def test_perfect_negative(self):
        assert pearson_correlation([1, 2, 3], [3, 2, 1]) == pytest.approx(-1.0)

    def test_degenerate_inputs_are_zero(self):
        assert pearson_correlation([1, 2], [1]) == 0.0
        assert pearson_correlation([1], [1]) == 0.0
        assert pearson_correlation([1, 1, 1], [1, 2, 3]) == 0.0


class TestWelch:
    def test_identical_samples(self):
        result = welch_t_test([1.0, 2.0, 3.0], [1.0, 2.0, 3.0])
        assert result.t_statistic == 0.0
        assert result.p_value == pytest.approx(1.0)
        assert result.significant is False

    def test_clear_difference_is_significant(self):
        a = [90.0, 91.0, 92.0, 93.0, 94.0]
        b = [60.0, 61.0, 62.0, 63.0, 64.0]
        result = welch_t_test(a, b)
        assert result.mean_difference == pytest.approx(30.0)
        assert result.significant is True
        assert result.ci_low < 30.0 < result.ci_high
        assert result.degrees_of_freedom == pytest.approx(8.0)

    def test_standard_error_uses_sample_variance(self):
        a, b = [1.0, 3.0], [0.0, 0.0, 0.0]
        result = welch_t_test(a, b)
        # sample variance of a is 2, so the standard error is sqrt(2 / 2) = 1
        assert result.t_statistic == pytest.approx(2.0)

    def test_zero_variance_difference(self):
        result = welch_t_test([5.0, 5.0], [3.0, 3.0])
        assert math.isinf(result.t_statistic)
        assert result.p_value == 0.0
        assert result.significant is True

    def test_too_small(self):
        with pytest.raises(ValueError):
            welch_t_test([1.0], [1.0, 2.0])

    def test_normal_p_value(self):
        assert normal_two_sided_p(1.96) == pytest.approx(0.05, abs=1e-3)
