"""A point cloud: XYZ coordinates plus optional per-point fields."""

from __future__ import annotations

import copy as _copy
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from .geometry import transform_points


def _as_points(points) -> np.ndarray:
    pts = np.array(points, dtype=float)
    if pts.size == 0:
        pts = pts.reshape(0, 3)
    if pts.ndim != 2 or pts.shape[1] != 3:
        raise ValueError(f"expected points of shape (N, 3), got {pts.shape}")
    return pts


@dataclass
class PointCloud:
    """XYZ points with layout (width x height), a header and extra fields.

    ``fields`` maps a name such as ``"intensity"`` or ``"rgb"`` to an array
    whose first dimension matches the number of points.
    """

    points: np.ndarray
    width: int | None = None
    height: int = 1
    header: dict[str, Any] = field(default_factory=dict)
    is_dense: bool = True
    fields: dict[str, np.ndarray] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.points = _as_points(self.points)
        count = len(self.points)
        if self.width is None:
            self.width = count
            self.height = 1
        if self.width < 0 or self.height < 0 or self.width * self.height != count:
            raise ValueError(
                f"layout {self.width}x{self.height} does not hold {count} points"
            )
        checked = {}
        for name, values in self.fields.items():
            array = np.array(values)
            if array.ndim == 0 or len(array) != count:
                raise ValueError(f"field {name!r} does not have {count} entries")
            checked[name] = array
        self.fields = checked

    def __len__(self) -> int:
        return len(self.points)

    def copy(self) -> PointCloud:
        """Return an independent copy."""
        return PointCloud(
            points=self.points.copy(),
            width=self.width,
            height=self.height,
            header=_copy.deepcopy(self.header),
            is_dense=self.is_dense,
            fields={name: values.copy() for name, values in self.fields.items()},
        )

    def select(self, indices) -> PointCloud:
        """Return the points at ``indices``; a full selection keeps the layout."""
        idx = np.asarray(indices, dtype=np.intp).reshape(-1)
        count = len(self.points)
        if idx.size and (idx.min() < 0 or idx.max() >= count):
            raise IndexError(f"point index out of range for a cloud of {count} points")
        if idx.size == count:
            width, height = self.width, self.height
        else:
            width, height = int(idx.size), 1
        return PointCloud(
            points=self.points[idx],
            width=width,
            height=height,
            header=_copy.deepcopy(self.header),
            is_dense=self.is_dense,
            fields={name: values[idx] for name, values in self.fields.items()},
        )

    def transformed(self, matrix) -> PointCloud:
        """Return a copy with every point moved by the 4x4 transform."""
        result = self.copy()
        result.points = transform_points(self.points, matrix)
        return result