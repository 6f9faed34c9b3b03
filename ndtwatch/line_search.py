"""More-Thuente line search helpers: auxiliary function, interval update, trial values."""

from __future__ import annotations

import math
from dataclasses import dataclass

SUFFICIENT_DECREASE = 1.0e-4


@dataclass
class Interval:
    """The interval of candidate step lengths and the function data at its ends.

    ``a_l`` is the endpoint with the lower function value; ``a_u`` is the
    other endpoint.  ``f`` and ``g`` hold the value and derivative there.
    """

    a_l: float
    f_l: float
    g_l: float
    a_u: float
    f_u: float
    g_u: float


def psi(a: float, f_a: float, f_0: float, g_0: float, mu: float = SUFFICIENT_DECREASE) -> float:
    """Auxiliary function that is non-positive where sufficient decrease holds."""
    return f_a - f_0 - mu * g_0 * a


def d_psi(g_a: float, g_0: float, mu: float = SUFFICIENT_DECREASE) -> float:
    """Derivative of :func:`psi` with respect to the step length."""
    return g_a - mu * g_0


def update_interval(interval: Interval, a_t: float, f_t: float, g_t: float) -> bool:
    """Move an endpoint of ``interval`` to the trial point; return True once it has converged."""
    if f_t > interval.f_l:
        interval.a_u, interval.f_u, interval.g_u = a_t, f_t, g_t
        return False
    slope = g_t * (interval.a_l - a_t)
    if slope > 0:
        interval.a_l, interval.f_l, interval.g_l = a_t, f_t, g_t
        return False
    if slope < 0:
        interval.a_u, interval.f_u, interval.g_u = interval.a_l, interval.f_l, interval.g_l
        interval.a_l, interval.f_l, interval.g_l = a_t, f_t, g_t
        return False
    return True


def _cubic_minimizer(a_0: float, f_0: float, g_0: float, a_1: float, f_1: float, g_1: float) -> float:
    """Minimizer of the cubic interpolating values and derivatives at two points."""
    z = 3 * (f_1 - f_0) / (a_1 - a_0) - g_1 - g_0
    w = math.sqrt(z * z - g_1 * g_0)
    return a_0 + (a_1 - a_0) * (w - g_0 - z) / (g_1 - g_0 + 2 * w)


def _secant_minimizer(a_l: float, g_l: float, a_t: float, g_t: float) -> float:
    """Minimizer of the quadratic interpolating the derivatives at two points."""
    return a_l - (a_l - a_t) / (g_l - g_t) * g_l


def trial_value_selection(
    a_l: float,
    f_l: float,
    g_l: float,
    a_u: float,
    f_u: float,
    g_u: float,
    a_t: float,
    f_t: float,
    g_t: float,
) -> float:
    """Choose the next trial step length from the interval ends and the last trial."""
    if f_t > f_l:
        a_c = _cubic_minimizer(a_l, f_l, g_l, a_t, f_t, g_t)
        a_q = a_l - 0.5 * (a_l - a_t) * g_l / (g_l - (f_l - f_t) / (a_l - a_t))
        if abs(a_c - a_l) < abs(a_q - a_l):
            return a_c
        return 0.5 * (a_q + a_c)

    if g_t * g_l < 0:
        a_c = _cubic_minimizer(a_l, f_l, g_l, a_t, f_t, g_t)
        a_s = _secant_minimizer(a_l, g_l, a_t, g_t)
        return a_c if abs(a_c - a_t) >= abs(a_s - a_t) else a_s

    if abs(g_t) <= abs(g_l):
        a_c = _cubic_minimizer(a_l, f_l, g_l, a_t, f_t, g_t)
        a_s = _secant_minimizer(a_l, g_l, a_t, g_t)
        a_t_next = a_c if abs(a_c - a_t) < abs(a_s - a_t) else a_s
        bound = a_t + 0.66 * (a_u - a_t)
        if a_t > a_l:
            return min(bound, a_t_next)
        return max(bound, a_t_next)

    return _cubic_minimizer(a_u, f_u, g_u, a_t, f_t, g_t)