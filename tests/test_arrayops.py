import numpy as np
import pytest

from smcpy import arrayops
from smcpy.arrayops import ArrayStats

STEP = 0.01


def _time(n=100):
    return np.arange(n) * STEP


class TestIntegrationAndDifferentiation:

    def test_integrate_constant(self):
        y = arrayops.integrate(np.full(101, 2.0), STEP)
        assert y[0] == 0.0
        assert y[-1] == pytest.approx(2.0)

    def test_integrate_initial_value(self):
        y = arrayops.integrate(np.ones(11), 0.1, initial=5.0)
        assert y[0] == 5.0
        assert y[-1] == pytest.approx(6.0)

    def test_integrate_trapezoid_rule(self):
        x = np.array([0.0, 1.0, 3.0])
        np.testing.assert_allclose(arrayops.integrate(x, 0.5), [0.0, 0.25, 1.25])

    @pytest.mark.parametrize("x, dt", [(None, 0.01), (np.array([]), 0.01),
                                       (np.ones(10), 0.0), (np.ones(1), 0.01)])
    def test_integrate_degenerate(self, x, dt):
        assert arrayops.integrate(x, dt).size == 0

    def test_differentiate_line(self):
        t = _time()
        np.testing.assert_allclose(arrayops.differentiate(3.0 * t + 1.0, STEP), 3.0)

    @pytest.mark.parametrize("x, dt", [(None, 0.01), (np.array([]), 0.01), (np.ones(10), 0.0)])
    def test_differentiate_degenerate(self, x, dt):
        assert arrayops.differentiate(x, dt).size == 0

    def test_integrate_then_differentiate_is_close(self):
        t = _time(1000)
        x = np.sin(2 * np.pi * t)
        back = arrayops.differentiate(arrayops.integrate(x, STEP), STEP)
        assert np.max(np.abs(back[1:-1] - x[1:-1])) < 1e-3

    @pytest.mark.parametrize("order", [3, 5, 7, 9])
    def test_central_diff_orders(self, order):
        t = _time(1000)
        x = np.sin(2 * np.pi * t)
        d = arrayops.central_diff(x, STEP, order)
        expected = 2 * np.pi * np.cos(2 * np.pi * t)
        assert d.size == x.size
        assert np.max(np.abs(d[10:-10] - expected[10:-10])) < 0.01

    def test_central_diff_higher_order_is_more_accurate(self):
        t = _time(1000)
        x = np.sin(2 * np.pi * 5 * t)
        expected = 2 * np.pi * 5 * np.cos(2 * np.pi * 5 * t)
        err3 = np.max(np.abs(arrayops.central_diff(x, STEP, 3) - expected)[10:-10])
        err9 = np.max(np.abs(arrayops.central_diff(x, STEP, 9) - expected)[10:-10])
        assert err9 < err3

    def test_central_diff_three_point_matches_differentiate(self):
        x = np.random.default_rng(0).standard_normal(50)
        np.testing.assert_allclose(arrayops.central_diff(x, STEP, 3), arrayops.differentiate(x, STEP))

    @pytest.mark.parametrize("order", [0, 2, 4, 11])
    def test_central_diff_invalid_order(self, order):
        assert arrayops.central_diff(np.ones(20), STEP, order).size == 0


class TestTrends:

    def test_make_time_array(self):
        np.testing.assert_allclose(arrayops.make_time_array(0.5, 4), [0.0, 0.5, 1.0, 1.5])
        assert arrayops.make_time_array(0.0, 4).size == 0
        assert arrayops.make_time_array(0.5, 0).size == 0

    def test_remove_value(self):
        x = np.full(5, 3.0)
        assert arrayops.remove_value(x, 1.0)
        np.testing.assert_allclose(x, 2.0)
        assert not arrayops.remove_value(np.array([]), 1.0)

    def test_remove_linear_trend(self):
        t = _time()
        x = 2.0 * t - 1.0
        assert arrayops.remove_linear_trend(x, STEP) == 1
        np.testing.assert_allclose(x, 0.0, atol=1e-10)

    @pytest.mark.parametrize("x, dt", [(None, STEP), (np.array([]), STEP), (np.ones(10), 0.0)])
    def test_remove_linear_trend_degenerate(self, x, dt):
        assert arrayops.remove_linear_trend(x, dt) == -1

    def test_find_linear_trend(self):
        t = _time()
        line = 0.5 * t + 2.0
        np.testing.assert_allclose(arrayops.find_linear_trend(line + np.sin(2 * np.pi * 5 * t), STEP),
                                   line, atol=0.5)
        np.testing.assert_allclose(arrayops.find_linear_trend(line, STEP), line)

    def test_remove_linear_trend_from_subarray(self):
        t = _time(200)
        x = 3.0 * t + 1.0
        sub = x[:50].copy()
        assert arrayops.remove_linear_trend_from_subarray(x, sub, STEP)
        np.testing.assert_allclose(x, 0.0, atol=1e-9)

    @pytest.mark.parametrize("order", [1, 2, 3])
    def test_find_polynomial_trend(self, order):
        t = _time()
        coefs = np.arange(1.0, order + 2.0)
        found = arrayops.find_polynomial_trend(np.polyval(coefs, t), order, STEP)
        np.testing.assert_allclose(found, coefs, rtol=1e-6, atol=1e-8)

    @pytest.mark.parametrize("order", [0, 4])
    def test_find_polynomial_trend_invalid_order(self, order):
        assert arrayops.find_polynomial_trend(np.ones(10), order, STEP).size == 0

    def test_best_fit_prefers_line_for_line(self):
        t = _time()
        x = 4.0 * t - 2.0 + 0.1 * np.sin(2 * np.pi * 5 * t)
        assert len(arrayops.find_trend_with_best_fit(x, STEP)) == 2
        assert arrayops.remove_trend_with_best_fit(x, STEP) == 1

    def test_best_fit_prefers_parabola_for_parabola(self):
        t = _time()
        x = 3.0 * t ** 2 - t + 0.5
        assert arrayops.remove_trend_with_best_fit(x, STEP) == 2
        np.testing.assert_allclose(x, 0.0, atol=1e-9)

    def test_best_fit_exact_line_keeps_order_one(self):
        x = 2.0 * _time()
        assert arrayops.remove_trend_with_best_fit(x, STEP) == 1

    def test_best_fit_invalid(self):
        assert arrayops.remove_trend_with_best_fit(np.array([]), STEP) == -1
        assert arrayops.find_trend_with_best_fit(None, STEP).size == 0


class TestSearchAndStatistics:

    def test_find_subset_mean(self):
        x = np.concatenate((np.full(50, 2.5), np.full(50, -1.0)))
        assert arrayops.find_subset_mean(x, 0, 50) == pytest.approx(2.5)

    @pytest.mark.parametrize("start, end", [(-1, 10), (0, 101), (20, 10), (5, 5)])
    def test_find_subset_mean_invalid(self, start, end):
        assert arrayops.find_subset_mean(np.ones(100), start, end) == arrayops.MIN_VALUE

    def test_find_zero_crossing_forward_and_backward(self):
        x = np.sin(np.arange(100.0))
        # sin(9) > 0 > sin(10), sin(84) > 0 > sin(85)
        assert arrayops.find_zero_crossing(x, 12, 1) == 9
        assert arrayops.find_zero_crossing(x, 84, 0) == 84

    def test_find_zero_crossing_none(self):
        assert arrayops.find_zero_crossing(np.full(20, 3.0), 5, 0) == -1
        assert arrayops.find_zero_crossing(np.full(20, 3.0), 5, 1) == -1

    def test_find_zero_crossing_zero_then_value(self):
        x = np.array([1.0, 0.0, 0.0, -1.0])
        assert arrayops.find_zero_crossing(x, 0, 0) == 2

    @pytest.mark.parametrize("x, start, direction", [
        (None, 0, 0), (np.array([]), 0, 0), (np.ones(5), -1, 0),
        (np.ones(5), 5, 1), (np.ones(5), 2, 3)])
    def test_find_zero_crossing_invalid(self, x, start, direction):
        assert arrayops.find_zero_crossing(x, start, direction) == -2

    def test_correct_for_zero_initial_estimate(self):
        x = np.array([1.0, 1.0, 1.0, -1.0, 5.0, 6.0])
        assert arrayops.correct_for_zero_initial_estimate(x, 5)
        # crossing pair (3, 4); mean of x[0:4] is 0.5
        np.testing.assert_allclose(x, [0.5, 0.5, 0.5, -1.5, 4.5, 5.5])

    def test_correct_for_zero_initial_estimate_without_crossing(self):
        x = np.full(10, 2.0)
        assert not arrayops.correct_for_zero_initial_estimate(x, 8)
        np.testing.assert_allclose(x, 2.0)

    def test_root_mean_square(self):
        a = np.array([1.0, 2.0, 3.0])
        assert arrayops.root_mean_square(a, a) == 0.0
        assert arrayops.root_mean_square(a, np.zeros(3)) == pytest.approx(np.sqrt(14.0 / 3.0))
        assert arrayops.root_mean_square(None, a) == -1.0
        assert arrayops.root_mean_square(np.array([]), np.array([])) == -1.0
        assert arrayops.root_mean_square(a, a[:2]) == -1.0

    def test_perform_3pt_smoothing(self):
        x = np.array([0.0, 4.0, 0.0, 4.0, 8.0])
        np.testing.assert_allclose(arrayops.perform_3pt_smoothing(x), [0.0, 2.0, 2.0, 4.0, 8.0])
        assert arrayops.perform_3pt_smoothing(np.array([])).size == 0

    def test_unit_conversion(self):
        np.testing.assert_allclose(arrayops.convert_units(np.array([1.0, -0.5]), 980.665),
                                   [980.665, -490.3325])
        np.testing.assert_allclose(arrayops.counts_to_physical_values(np.array([2, -4]), 0.25),
                                   [0.5, -1.0])

    def test_array_stats(self):
        stats = ArrayStats.of(np.array([1.0, -5.0, 3.0]))
        assert stats.peak == -5.0
        assert stats.peak_index == 1
        assert stats.mean == pytest.approx(-1.0 / 3.0)
        assert ArrayStats.of(np.array([])) == ArrayStats(0.0, 0, 0.0)
