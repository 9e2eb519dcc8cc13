"""
Tests for numeric primitives and sequence statistics.

Run with: python -m pytest tests/test_numeric.py -v
"""

import math
import pytest
import numpy as np
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from intention_stats.core.numeric import (
    erf,
    normal_cdf,
    two_sided_p,
    one_sided_p,
    inv_norm,
    regularized_beta,
    student_t_cdf,
    two_sided_t_p,
    t_critical,
    chi_square_cdf,
    chi_square_sf,
    safe_ratio,
    finite_or_none,
)
from intention_stats.core.sequences import (
    shannon_entropy,
    entropy_windows,
    autocorrelation,
    cross_correlation,
    pearson_correlation,
    max_cross_correlation,
    linear_trend,
    turning_points,
    hann_window,
    periodogram,
    runs_test,
    quantile,
    quartiles,
    sequential_differences,
)


class TestNormal:
    """Tests for erf, the normal CDF and its inverse."""

    @pytest.mark.parametrize("x", [-2.5, -1.0, -0.3, 0.0, 0.5, 1.0, 2.0, 3.5])
    def test_erf_matches_math(self, x):
        """Test A&S erf stays within its published error bound."""
        assert abs(erf(x) - math.erf(x)) < 2e-7

    def test_normal_cdf(self):
        """Test a few well-known normal CDF values."""
        assert normal_cdf(0.0) == pytest.approx(0.5, abs=1e-7)
        assert normal_cdf(1.96) == pytest.approx(0.975, abs=1e-4)
        assert normal_cdf(-1.96) == pytest.approx(0.025, abs=1e-4)

    def test_two_sided_p(self):
        """Test two-sided p-values and the NaN guard."""
        assert two_sided_p(1.96) == pytest.approx(0.05, abs=1e-3)
        assert two_sided_p(0.0) == pytest.approx(1.0, abs=1e-7)
        assert two_sided_p(float('nan')) == 1.0
        assert 0.0 <= two_sided_p(40.0) <= 1e-10

    def test_one_sided_p(self):
        """Test upper-tail p-values."""
        assert one_sided_p(1.645) == pytest.approx(0.05, abs=1e-3)
        assert one_sided_p(-10.0) == pytest.approx(1.0)

    def test_inv_norm(self):
        """Test Acklam's inverse normal."""
        assert inv_norm(0.5) == pytest.approx(0.0, abs=1e-9)
        assert inv_norm(0.975) == pytest.approx(1.959964, abs=1e-5)
        assert inv_norm(0.01) == pytest.approx(-2.326348, abs=1e-5)
        assert inv_norm(0.999) == pytest.approx(3.090232, abs=1e-5)

    @pytest.mark.parametrize("p", [0.0, 1.0, -0.1, 1.5])
    def test_inv_norm_rejects_out_of_range(self, p):
        """Test inv_norm raises outside (0, 1)."""
        with pytest.raises(ValueError):
            inv_norm(p)


class TestStudentT:
    """Tests for the Student t distribution."""

    def test_regularized_beta_uniform(self):
        """Test I_x(1, 1) = x."""
        for x in (0.1, 0.3, 0.7, 0.9):
            assert regularized_beta(1.0, 1.0, x) == pytest.approx(x, abs=1e-10)

    def test_regularized_beta_bounds(self):
        """Test the endpoints."""
        assert regularized_beta(2.0, 3.0, 0.0) == 0.0
        assert regularized_beta(2.0, 3.0, 1.0) == 1.0

    def test_cdf_symmetry(self):
        """Test the t CDF is symmetric about zero."""
        assert student_t_cdf(0.0, 5) == pytest.approx(0.5)
        assert student_t_cdf(1.3, 7) + student_t_cdf(-1.3, 7) == pytest.approx(1.0, abs=1e-10)

    @pytest.mark.parametrize("df", [1, 5, 10, 20, 30])
    def test_table_critical_values_give_alpha(self, df):
        """Test the tabulated critical value maps back to p ~= 0.05."""
        assert two_sided_t_p(t_critical(df), df) == pytest.approx(0.05, abs=1e-3)

    def test_large_df_approaches_normal(self):
        """Test t with many df behaves like z."""
        assert two_sided_t_p(1.96, 1000) == pytest.approx(0.05, abs=1e-3)

    def test_degenerate_df(self):
        """Test non-positive df gives no evidence."""
        assert two_sided_t_p(3.0, 0) == 1.0
        assert student_t_cdf(3.0, 0) == 0.5

    def test_t_critical_lookup(self):
        """Test table lookup, flooring and the normal fallback."""
        assert t_critical(10) == 2.228
        assert t_critical(10.7) == 2.228
        assert t_critical(5, two_tailed=False) == 2.015
        assert t_critical(100) == 1.96
        assert t_critical(100, two_tailed=False) == 1.645


class TestChiSquare:
    """Tests for chi-square tail functions."""

    def test_known_critical_values(self):
        """Test the 5% critical values for 1 and 2 df."""
        assert chi_square_sf(3.841, 1) == pytest.approx(0.05, abs=1e-3)
        assert chi_square_sf(5.991, 2) == pytest.approx(0.05, abs=1e-4)

    def test_two_df_closed_form(self):
        """Test P(X >= x) = exp(-x / 2) for 2 df."""
        for x in (0.5, 2.0, 8.0, 20.0):
            assert chi_square_sf(x, 2) == pytest.approx(math.exp(-x / 2), rel=1e-8)

    def test_cdf_and_sf_complement(self):
        """Test cdf + sf = 1."""
        assert chi_square_cdf(4.2, 3) + chi_square_sf(4.2, 3) == pytest.approx(1.0)

    def test_non_positive_input(self):
        """Test x <= 0."""
        assert chi_square_cdf(0.0, 1) == 0.0
        assert chi_square_sf(0.0, 1) == 1.0


class TestHelpers:
    """Tests for small numeric helpers."""

    def test_safe_ratio(self):
        assert safe_ratio(1.0, 0.0) == 0.0
        assert safe_ratio(1.0, float('inf'), default=-1.0) == -1.0
        assert safe_ratio(3.0, 2.0) == 1.5

    def test_finite_or_none(self):
        assert finite_or_none(None) is None
        assert finite_or_none(float('nan')) is None
        assert finite_or_none(float('-inf')) is None
        assert finite_or_none(np.float64(0.25)) == 0.25


class TestEntropy:
    """Tests for Shannon entropy and entropy windows."""

    def test_balanced_and_constant(self):
        """Test entropy of balanced, constant and empty streams."""
        assert shannon_entropy([0, 1, 0, 1]) == pytest.approx(1.0)
        assert shannon_entropy([1, 1, 1]) == 0.0
        assert shannon_entropy([]) == 0.0

    def test_skewed(self):
        """Test entropy of a 1/4 stream."""
        expected = -(0.25 * math.log2(0.25) + 0.75 * math.log2(0.75))
        assert shannon_entropy([1, 0, 0, 0]) == pytest.approx(expected)

    def test_windows(self):
        """Test equal windows drop the trailing remainder."""
        assert entropy_windows([0, 1] * 4, 2) == [1.0, 1.0]
        windows = entropy_windows([1, 1, 0, 1, 0, 0, 1], 3)
        assert windows == [0.0, 1.0, 0.0]
        assert entropy_windows([1], 2) is None


class TestCorrelation:
    """Tests for autocorrelation and cross-correlation."""

    def test_autocorrelation_lag_one(self):
        """Test the textbook estimator on a ramp."""
        assert autocorrelation([1, 2, 3, 4, 5], 1) == pytest.approx(0.4)

    def test_autocorrelation_degenerate(self):
        """Test constant series and lags beyond the length."""
        assert autocorrelation([0.5] * 10, 1) == 0.0
        assert autocorrelation([1, 2, 3], 3) == 0.0

    def test_alternating_cross_correlation(self):
        """Test perfectly anti-correlated bit streams."""
        subject = [0, 1] * 20
        control = [1, 0] * 20
        assert cross_correlation(subject, control, 0) == pytest.approx(-1.0)

    def test_cross_correlation_unequal_lengths(self):
        assert cross_correlation([1, 2, 3], [1, 2], 0) == 0.0

    def test_pearson(self):
        """Test Pearson r and its minimum size."""
        assert pearson_correlation([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)
        assert pearson_correlation([1, 2], [1, 2]) is None
        assert pearson_correlation([1, 1, 1], [1, 2, 3]) == 0.0

    def test_max_cross_correlation(self):
        """Test the lag scan finds lag 0 for identical series."""
        rng = np.random.default_rng(7)
        x = list(rng.normal(size=40))
        result = max_cross_correlation(x, x)
        assert result['lag'] == 0
        assert result['max_corr'] == pytest.approx(1.0)
        assert result['max_lag'] == 10
        assert max_cross_correlation(x[:5], x[:5]) is None


class TestTrendAndTurningPoints:
    """Tests for linear trends and turning points."""

    def test_linear_trend(self):
        fit = linear_trend([1, 3, 5, 7])
        assert fit.slope == pytest.approx(2.0)
        assert fit.intercept == pytest.approx(1.0)
        assert fit.r2 == pytest.approx(1.0)

    def test_linear_trend_short(self):
        fit = linear_trend([0.4])
        assert fit.slope == 0.0
        assert fit.intercept == 0.4

    def test_turning_points(self):
        """Test counts, expectation and ratio."""
        tp = turning_points([1, 3, 2, 4, 1])
        assert tp.maxima == 2
        assert tp.minima == 1
        assert tp.total == 3
        assert tp.expected == 1.5
        assert tp.excess == 1.5
        assert tp.excess_percent == pytest.approx(100.0)
        assert tp.rate == 1.0
        assert tp.ratio == 2.0

    def test_turning_point_ratio_edge_cases(self):
        """Test monotone series and maxima without minima."""
        assert turning_points([1, 2, 3, 4]).ratio == 1.0
        assert turning_points([1, 3, 2]).ratio is None
        assert turning_points([1, 2]).total == 0


class TestSpectrum:
    """Tests for the periodogram."""

    def test_hann_window(self):
        window = hann_window(5)
        assert window[0] == pytest.approx(0.0)
        assert window[2] == pytest.approx(1.0)
        assert window[4] == pytest.approx(0.0)

    def test_direct_peak(self):
        """Test a period-8 sine peaks at frequency 1/8."""
        series = [math.sin(2 * math.pi * i / 8) for i in range(64)]
        spectrum = periodogram(series)
        assert spectrum.peak_frequency == pytest.approx(0.125)
        assert spectrum.method == 'periodogram'
        assert len(spectrum.frequencies) == 32

    def test_welch_peak(self):
        """Test Welch averaging over half-overlapping Hann segments."""
        series = [math.sin(2 * math.pi * i / 8) for i in range(128)]
        spectrum = periodogram(series, window='hann', method='welch', segment_length=32)
        assert spectrum.method == 'welch'
        assert spectrum.segments == 7
        assert spectrum.peak_frequency == pytest.approx(0.125)

    def test_short_series(self):
        spectrum = periodogram([1.0, 0.0, 1.0])
        assert spectrum.method == 'none'
        assert spectrum.frequencies == ()

    def test_unknown_options(self):
        with pytest.raises(ValueError):
            periodogram([0.0] * 10, window='hamming')
        with pytest.raises(ValueError):
            periodogram([0.0] * 10, method='multitaper')


class TestRunsAndQuantiles:
    """Tests for the runs test, quantiles and differences."""

    def test_alternating_runs(self):
        """Test an alternating sequence has far too many runs."""
        result = runs_test([0, 1] * 10)
        assert result.num_runs == 20
        assert result.expected == pytest.approx(11.0)
        assert result.z > 4
        assert result.p_value < 0.001

    def test_constant_runs(self):
        result = runs_test([1, 1, 1, 1])
        assert result.p_value == 1.0
        assert result.n2 == 0

    def test_quantile(self):
        """Test R type-7 interpolation."""
        assert quantile([10, 20, 30, 40], 0.5) == 25.0
        assert quantile([10, 20, 30, 40], 0.25) == pytest.approx(17.5)
        assert quantile([10, 20, 30, 40], 1.0) == 40.0
        assert quantile([], 0.5) is None

    def test_quartiles(self):
        assert quartiles([40, 10, 30, 20]) == (17.5, 25.0, 32.5)
        assert quartiles([]) is None

    def test_sequential_differences(self):
        assert sequential_differences([1, 4, 2]) == [3, -2]
        assert sequential_differences([1]) == []
