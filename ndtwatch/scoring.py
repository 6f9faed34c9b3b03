"""Score, gradient and hessian of the NDT objective summed over a whole cloud."""

from __future__ import annotations

from collections.abc import Iterator

import numpy as np

from .derivatives import angle_derivatives, point_derivatives, update_derivatives, update_hessian
from .voxel_grid import VoxelGridCovariance


def _as_points(cloud) -> np.ndarray:
    pts = np.asarray(getattr(cloud, "points", cloud), dtype=float)
    if pts.size == 0:
        pts = pts.reshape(0, 3)
    if pts.ndim != 2 or pts.shape[1] != 3:
        raise ValueError(f"expected points of shape (N, 3), got {pts.shape}")
    return pts


def _pairs(source_points, transformed_points) -> tuple[np.ndarray, np.ndarray]:
    source = _as_points(source_points)
    transformed = _as_points(transformed_points)
    if len(transformed) < len(source):
        raise ValueError(
            f"{len(transformed)} transformed points for {len(source)} source points"
        )
    return source, transformed[: len(source)]


def _neighbourhoods(
    source: np.ndarray,
    transformed: np.ndarray,
    grid: VoxelGridCovariance,
    resolution: float,
) -> Iterator[tuple[np.ndarray, np.ndarray, np.ndarray]]:
    """Yield (original point, transformed point minus voxel mean, inverse covariance)."""
    for x, x_t in zip(source, transformed):
        for leaf in grid.radius_search(x_t, resolution):
            yield x, x_t - leaf.mean, leaf.icov


def compute_derivatives(
    source_points,
    transformed_points,
    grid: VoxelGridCovariance,
    resolution: float,
    p,
    gauss_d1: float,
    gauss_d2: float,
    compute_hessian: bool = True,
) -> tuple[float, np.ndarray, np.ndarray]:
    """Return ``(score, gradient, hessian)`` of the NDT score at transform vector ``p``.

    ``transformed_points`` are the source points moved by ``p``; each is scored
    against every voxel whose mean lies within ``resolution``.  Without
    ``compute_hessian`` the hessian is all zeros.
    """
    source, transformed = _pairs(source_points, transformed_points)
    angles = angle_derivatives(p, True)

    score = 0.0
    gradient = np.zeros(6)
    hessian = np.zeros((6, 6))
    for x, x_trans, c_inv in _neighbourhoods(source, transformed, grid, resolution):
        point_gradient, point_hessian = point_derivatives(x, angles, compute_hessian)
        inc, grad_inc, hess_inc = update_derivatives(
            x_trans, c_inv, point_gradient, point_hessian, gauss_d1, gauss_d2, compute_hessian
        )
        score += inc
        gradient += grad_inc
        if compute_hessian:
            hessian += hess_inc
    return score, gradient, hessian


def compute_hessian(
    source_points,
    transformed_points,
    grid: VoxelGridCovariance,
    resolution: float,
    p,
    gauss_d1: float,
    gauss_d2: float,
) -> np.ndarray:
    """Return only the hessian of the NDT score at transform vector ``p``."""
    source, transformed = _pairs(source_points, transformed_points)
    angles = angle_derivatives(p, True)

    hessian = np.zeros((6, 6))
    for x, x_trans, c_inv in _neighbourhoods(source, transformed, grid, resolution):
        point_gradient, point_hessian = point_derivatives(x, angles, True)
        hessian += update_hessian(
            x_trans, c_inv, point_gradient, point_hessian, gauss_d1, gauss_d2
        )
    return hessian