"""A voxel grid that keeps the mean and covariance of the points in each voxel."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.spatial import cKDTree

MIN_COVAR_EIGVALUE_MULT = 0.01


@dataclass(frozen=True)
class Leaf:
    """One occupied voxel with the normal distribution fitted to its points."""

    index: tuple[int, int, int]
    nr_points: int
    mean: np.ndarray
    cov: np.ndarray
    icov: np.ndarray
    evals: np.ndarray
    evecs: np.ndarray


def _fit_leaf(index: tuple[int, int, int], points: np.ndarray) -> Leaf | None:
    """Fit mean and regularised covariance; return None for degenerate voxels."""
    count = len(points)
    mean = points.mean(axis=0)
    centred = points - mean
    cov = centred.T @ centred / (count - 1)
    evals, evecs = np.linalg.eigh(cov)
    max_eval = evals[-1]
    if not np.isfinite(max_eval) or max_eval <= 0.0:
        return None
    min_eval = MIN_COVAR_EIGVALUE_MULT * max_eval
    if evals[0] < min_eval:
        evals = np.maximum(evals, min_eval)
        cov = evecs @ np.diag(evals) @ evecs.T
    try:
        icov = np.linalg.inv(cov)
    except np.linalg.LinAlgError:
        return None
    if not np.all(np.isfinite(icov)):
        return None
    return Leaf(
        index=index,
        nr_points=count,
        mean=mean,
        cov=cov,
        icov=icov,
        evals=evals,
        evecs=evecs,
    )


class VoxelGridCovariance:
    """Splits a cloud into voxels and searches the voxel means by radius."""

    def __init__(self, leaf_size=1.0, min_points_per_voxel: int = 6) -> None:
        size = np.broadcast_to(np.asarray(leaf_size, dtype=float), (3,)).copy()
        if not np.all(np.isfinite(size)) or np.any(size <= 0.0):
            raise ValueError(f"leaf size must be positive, got {leaf_size!r}")
        if min_points_per_voxel < 3:
            raise ValueError(
                f"at least 3 points per voxel are needed, got {min_points_per_voxel}"
            )
        self.leaf_size = size
        self.min_points_per_voxel = int(min_points_per_voxel)
        self._leaves: dict[tuple[int, int, int], Leaf] = {}
        self._leaf_list: list[Leaf] = []
        self._tree: cKDTree | None = None
        self._built = False

    @property
    def leaves(self) -> dict[tuple[int, int, int], Leaf]:
        """The usable voxels, keyed by integer voxel index."""
        return dict(self._leaves)

    def __len__(self) -> int:
        return len(self._leaves)

    def build(self, points) -> None:
        """Fill the grid from an ``(N, 3)`` array or a cloud with ``points``."""
        pts = np.asarray(getattr(points, "points", points), dtype=float)
        if pts.size == 0:
            pts = pts.reshape(0, 3)
        if pts.ndim != 2 or pts.shape[1] != 3:
            raise ValueError(f"expected points of shape (N, 3), got {pts.shape}")
        pts = pts[np.all(np.isfinite(pts), axis=1)]

        self._leaves = {}
        if len(pts):
            keys = np.floor(pts / self.leaf_size).astype(np.int64)
            unique_keys, inverse = np.unique(keys, axis=0, return_inverse=True)
            inverse = np.asarray(inverse).reshape(-1)
            order = np.argsort(inverse, kind="stable")
            splits = np.cumsum(np.bincount(inverse))[:-1]
            for key, group in zip(unique_keys, np.split(pts[order], splits)):
                if len(group) < self.min_points_per_voxel:
                    continue
                index = (int(key[0]), int(key[1]), int(key[2]))
                leaf = _fit_leaf(index, group)
                if leaf is not None:
                    self._leaves[index] = leaf

        self._leaf_list = list(self._leaves.values())
        self._tree = (
            cKDTree(np.array([leaf.mean for leaf in self._leaf_list]))
            if self._leaf_list
            else None
        )
        self._built = True

    def radius_search(self, point, radius: float) -> list[Leaf]:
        """Return the voxels whose mean lies within ``radius``, nearest first."""
        if not self._built:
            raise RuntimeError("the voxel grid has not been built")
        if radius < 0:
            raise ValueError(f"radius must not be negative, got {radius}")
        query = np.asarray(getattr(point, "points", point), dtype=float).reshape(-1)[:3]
        if query.shape != (3,):
            raise ValueError("a search point needs three coordinates")
        if self._tree is None or not np.all(np.isfinite(query)):
            return []
        found = self._tree.query_ball_point(query, radius)
        leaves = [self._leaf_list[i] for i in found]
        leaves.sort(key=lambda leaf: float(np.sum((leaf.mean - query) ** 2)))
        return leaves