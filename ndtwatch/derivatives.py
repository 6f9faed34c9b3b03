"""Score, gradient and hessian terms of the normal-distributions transform."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

_NEAR_ZERO_ANGLE = 10e-5


@dataclass(frozen=True)
class AngleDerivatives:
    """Precomputed angular terms for one transform vector.

    ``j_ang`` holds the eight gradient vectors a..h as rows; ``h_ang`` holds
    the fifteen hessian vectors a2, a3, b2, b3, c2, c3, d1, d2, d3, e1, e2,
    e3, f1, f2, f3 as rows, or is None when they were not computed.
    """

    j_ang: np.ndarray
    h_ang: np.ndarray | None = None


def gauss_constants(outlier_ratio: float, resolution: float) -> tuple[float, float]:
    """Return ``(d1, d2)`` fitting the point distribution to a Gaussian."""
    gauss_c1 = 10.0 * (1.0 - outlier_ratio)
    gauss_c2 = outlier_ratio / resolution**3
    gauss_d3 = -math.log(gauss_c2)
    gauss_d1 = -math.log(gauss_c1 + gauss_c2) - gauss_d3
    gauss_d2 = -2.0 * math.log(
        (-math.log(gauss_c1 * math.exp(-0.5) + gauss_c2) - gauss_d3) / gauss_d1
    )
    return gauss_d1, gauss_d2


def _cos_sin(angle: float) -> tuple[float, float]:
    if abs(angle) < _NEAR_ZERO_ANGLE:
        return 1.0, 0.0
    return math.cos(angle), math.sin(angle)


def angle_derivatives(p, compute_hessian: bool = True) -> AngleDerivatives:
    """Precompute the angular parts of the point derivatives for vector ``p``."""
    v = np.asarray(p, dtype=float).reshape(-1)
    if v.shape != (6,):
        raise ValueError(f"expected a 6-element transform vector, got {v.size} elements")
    cx, sx = _cos_sin(v[3])
    cy, sy = _cos_sin(v[4])
    cz, sz = _cos_sin(v[5])

    j_ang = np.array(
        [
            [-sx * sz + cx * sy * cz, -sx * cz - cx * sy * sz, -cx * cy],
            [cx * sz + sx * sy * cz, cx * cz - sx * sy * sz, -sx * cy],
            [-sy * cz, sy * sz, cy],
            [sx * cy * cz, -sx * cy * sz, sx * sy],
            [-cx * cy * cz, cx * cy * sz, -cx * sy],
            [-cy * sz, -cy * cz, 0.0],
            [cx * cz - sx * sy * sz, -cx * sz - sx * sy * cz, 0.0],
            [sx * cz + cx * sy * sz, cx * sy * cz - sx * sz, 0.0],
        ]
    )
    if not compute_hessian:
        return AngleDerivatives(j_ang=j_ang)

    h_ang = np.array(
        [
            [-cx * sz - sx * sy * cz, -cx * cz + sx * sy * sz, sx * cy],
            [-sx * sz + cx * sy * cz, -cx * sy * sz - sx * cz, -cx * cy],
            [cx * cy * cz, -cx * cy * sz, cx * sy],
            [sx * cy * cz, -sx * cy * sz, sx * sy],
            [-sx * cz - cx * sy * sz, sx * sz - cx * sy * cz, 0.0],
            [cx * cz - sx * sy * sz, -sx * sy * cz - cx * sz, 0.0],
            [-cy * cz, cy * sz, sy],
            [-sx * sy * cz, sx * sy * sz, sx * cy],
            [cx * sy * cz, -cx * sy * sz, -cx * cy],
            [sy * sz, sy * cz, 0.0],
            [-sx * cy * sz, -sx * cy * cz, 0.0],
            [cx * cy * sz, cx * cy * cz, 0.0],
            [-cy * cz, cy * sz, 0.0],
            [-cx * sz - sx * sy * cz, -cx * cz + sx * sy * sz, 0.0],
            [-sx * sz + cx * sy * cz, -cx * sy * sz - sx * cz, 0.0],
        ]
    )
    return AngleDerivatives(j_ang=j_ang, h_ang=h_ang)


def point_derivatives(
    x, angles: AngleDerivatives, compute_hessian: bool = True
) -> tuple[np.ndarray, np.ndarray]:
    """Return the ``(3, 6)`` gradient and ``(18, 6)`` hessian of T(x, p) w.r.t. p.

    Block ``(3*i, j)`` of the hessian is the second derivative w.r.t. p_i
    and p_j.  Without ``compute_hessian`` the hessian is all zeros.
    """
    point = np.asarray(x, dtype=float).reshape(-1)
    if point.shape != (3,):
        raise ValueError("a point needs three coordinates")

    gradient = np.zeros((3, 6))
    gradient[:, :3] = np.eye(3)
    ja = angles.j_ang @ point
    gradient[1, 3], gradient[2, 3] = ja[0], ja[1]
    gradient[0, 4], gradient[1, 4], gradient[2, 4] = ja[2], ja[3], ja[4]
    gradient[0, 5], gradient[1, 5], gradient[2, 5] = ja[5], ja[6], ja[7]

    hessian = np.zeros((18, 6))
    if compute_hessian:
        if angles.h_ang is None:
            raise ValueError("angular hessian terms were not computed")
        ha = angles.h_ang @ point
        a = np.array([0.0, ha[0], ha[1]])
        b = np.array([0.0, ha[2], ha[3]])
        c = np.array([0.0, ha[4], ha[5]])
        d = ha[6:9]
        e = ha[9:12]
        f = ha[12:15]
        hessian[9:12, 3] = a
        hessian[12:15, 3] = b
        hessian[15:18, 3] = c
        hessian[9:12, 4] = b
        hessian[12:15, 4] = d
        hessian[15:18, 4] = e
        hessian[9:12, 5] = c
        hessian[12:15, 5] = e
        hessian[15:18, 5] = f
    return gradient, hessian


def _hessian_terms(
    x_trans: np.ndarray,
    c_inv: np.ndarray,
    point_gradient: np.ndarray,
    point_hessian: np.ndarray,
    weight: float,
    gauss_d2: float,
) -> np.ndarray:
    row = x_trans @ c_inv
    g = row @ point_gradient
    cov_dxd = c_inv @ point_gradient
    second = np.einsum("k,ikj->ij", row, point_hessian.reshape(6, 3, 6))
    return weight * (-gauss_d2 * np.outer(g, g) + second + cov_dxd.T @ point_gradient)


def _prepare(x_trans, c_inv) -> tuple[np.ndarray, np.ndarray]:
    xt = np.asarray(x_trans, dtype=float).reshape(3)
    ci = np.asarray(c_inv, dtype=float).reshape(3, 3)
    return xt, ci


def update_derivatives(
    x_trans,
    c_inv,
    point_gradient,
    point_hessian,
    gauss_d1: float,
    gauss_d2: float,
    compute_hessian: bool = True,
) -> tuple[float, np.ndarray, np.ndarray]:
    """Return one point's ``(score, gradient, hessian)`` contributions.

    ``x_trans`` is the transformed point minus the voxel mean and ``c_inv``
    the voxel's inverse covariance.  Invalid values contribute nothing.
    """
    xt, ci = _prepare(x_trans, c_inv)
    pg = np.asarray(point_gradient, dtype=float)
    ph = np.asarray(point_hessian, dtype=float)
    zero_grad, zero_hess = np.zeros(6), np.zeros((6, 6))

    e_x_cov_x = math.exp(-gauss_d2 * float(xt @ ci @ xt) / 2.0)
    score_inc = -gauss_d1 * e_x_cov_x
    e_x_cov_x *= gauss_d2
    if e_x_cov_x > 1 or e_x_cov_x < 0 or e_x_cov_x != e_x_cov_x:
        return 0.0, zero_grad, zero_hess
    e_x_cov_x *= gauss_d1

    gradient = e_x_cov_x * ((xt @ ci) @ pg)
    hessian = (
        _hessian_terms(xt, ci, pg, ph, e_x_cov_x, gauss_d2) if compute_hessian else zero_hess
    )
    return score_inc, gradient, hessian


def update_hessian(
    x_trans,
    c_inv,
    point_gradient,
    point_hessian,
    gauss_d1: float,
    gauss_d2: float,
) -> np.ndarray:
    """Return one point's contribution to the score hessian."""
    xt, ci = _prepare(x_trans, c_inv)
    e_x_cov_x = gauss_d2 * math.exp(-gauss_d2 * float(xt @ ci @ xt) / 2.0)
    if e_x_cov_x > 1 or e_x_cov_x < 0 or e_x_cov_x != e_x_cov_x:
        return np.zeros((6, 6))
    e_x_cov_x *= gauss_d1
    return _hessian_terms(
        xt,
        ci,
        np.asarray(point_gradient, dtype=float),
        np.asarray(point_hessian, dtype=float),
        e_x_cov_x,
        gauss_d2,
    )