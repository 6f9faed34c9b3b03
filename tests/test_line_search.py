import pytest

from ndtwatch.line_search import (
    SUFFICIENT_DECREASE,
    Interval,
    d_psi,
    psi,
    trial_value_selection,
    update_interval,
)

MINIMIZER = 1.0


def f(a):
    return (a - MINIMIZER) ** 2


def g(a):
    return 2 * (a - MINIMIZER)


def test_psi_is_zero_at_start():
    assert psi(0.0, 7.5, 7.5, -3.0) == 0.0


def test_psi_without_decrease_term_is_difference():
    assert psi(2.0, 5.0, 3.0, 1.0, mu=0.0) == pytest.approx(5.0 - 3.0)


def test_psi_default_mu_matches_constant():
    assert psi(1.0, 0.0, 0.0, -1.0) == pytest.approx(SUFFICIENT_DECREASE)


def test_d_psi_without_mu_is_gradient():
    assert d_psi(-0.25, 4.0, mu=0.0) == -0.25


def test_d_psi_invariant():
    g_a, g_0, mu = 0.7, -2.0, 0.3
    assert d_psi(g_a, g_0, mu) + mu * g_0 == pytest.approx(g_a)


def _interval():
    return Interval(a_l=0.0, f_l=1.0, g_l=-2.0, a_u=4.0, f_u=9.0, g_u=6.0)


def test_update_higher_value_replaces_upper():
    interval = _interval()
    assert update_interval(interval, 3.0, 5.0, 1.5) is False
    assert (interval.a_u, interval.f_u, interval.g_u) == (3.0, 5.0, 1.5)
    assert (interval.a_l, interval.f_l, interval.g_l) == (0.0, 1.0, -2.0)


def test_update_descent_replaces_lower():
    interval = _interval()
    assert update_interval(interval, 0.5, 0.25, -1.0) is False
    assert (interval.a_l, interval.f_l, interval.g_l) == (0.5, 0.25, -1.0)
    assert (interval.a_u, interval.f_u, interval.g_u) == (4.0, 9.0, 6.0)


def test_update_overshoot_swaps_ends():
    interval = _interval()
    assert update_interval(interval, 1.5, 0.25, 1.0) is False
    assert (interval.a_u, interval.f_u, interval.g_u) == (0.0, 1.0, -2.0)
    assert (interval.a_l, interval.f_l, interval.g_l) == (1.5, 0.25, 1.0)


def test_update_zero_slope_converges():
    interval = _interval()
    assert update_interval(interval, 1.0, 0.0, 0.0) is True
    assert interval == _interval()


def test_case_higher_value_finds_quadratic_minimizer():
    result = trial_value_selection(0.0, f(0.0), g(0.0), 4.0, f(4.0), g(4.0), 3.0, f(3.0), g(3.0))
    assert result == pytest.approx(MINIMIZER)


def test_case_sign_change_finds_quadratic_minimizer():
    result = trial_value_selection(0.0, f(0.0), g(0.0), 4.0, f(4.0), g(4.0), 1.5, f(1.5), g(1.5))
    assert result == pytest.approx(MINIMIZER)


def test_case_smaller_derivative_finds_minimizer_when_far_bound():
    result = trial_value_selection(0.0, f(0.0), g(0.0), 4.0, f(4.0), g(4.0), 0.5, f(0.5), g(0.5))
    assert result == pytest.approx(MINIMIZER)


def test_case_smaller_derivative_is_capped_by_upper_end():
    a_t, a_u = 0.5, 0.6
    result = trial_value_selection(0.0, f(0.0), g(0.0), a_u, f(a_u), g(a_u), a_t, f(a_t), g(a_t))
    assert a_t < result < MINIMIZER
    assert result < a_u


def test_case_larger_derivative_interpolates_upper_and_trial():
    result = trial_value_selection(5.0, 10.0, 1.0, 0.0, f(0.0), g(0.0), 3.0, f(3.0), g(3.0))
    assert result == pytest.approx(MINIMIZER)