"""Rigid transforms between 6-element pose vectors and 4x4 matrices."""

from __future__ import annotations

import math

import numpy as np


def _rotation_x(angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])


def _rotation_y(angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


def _rotation_z(angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def _as_matrix(matrix) -> np.ndarray:
    m = np.asarray(matrix, dtype=float)
    if m.shape != (4, 4):
        raise ValueError(f"expected a 4x4 matrix, got shape {m.shape}")
    return m


def convert_transform(x) -> np.ndarray:
    """Turn ``[x, y, z, roll, pitch, yaw]`` into a 4x4 matrix.

    The matrix is the translation followed by rotations about X, Y and Z,
    composed in that order (``T * Rx * Ry * Rz``).
    """
    v = np.asarray(x, dtype=float).reshape(-1)
    if v.shape != (6,):
        raise ValueError(f"expected a 6-element transform vector, got {v.size} elements")
    matrix = np.eye(4)
    matrix[:3, :3] = _rotation_x(v[3]) @ _rotation_y(v[4]) @ _rotation_z(v[5])
    matrix[:3, 3] = v[:3]
    return matrix


def matrix_to_vector(matrix) -> np.ndarray:
    """Turn a 4x4 rigid transform into ``[x, y, z, roll, pitch, yaw]``.

    The angles satisfy ``R = Rx(roll) * Ry(pitch) * Rz(yaw)`` with roll in
    ``[0, pi]`` and pitch, yaw in ``[-pi, pi]``.
    """
    m = _as_matrix(matrix)
    r = m[:3, :3]
    a0 = math.atan2(r[1, 2], r[2, 2])
    c2 = math.hypot(r[0, 0], r[0, 1])
    if a0 > 0.0:
        a0 -= math.pi
        a1 = math.atan2(-r[0, 2], -c2)
    else:
        a1 = math.atan2(-r[0, 2], c2)
    s1, c1 = math.sin(a0), math.cos(a0)
    a2 = math.atan2(s1 * r[2, 0] - c1 * r[1, 0], c1 * r[1, 1] - s1 * r[2, 1])
    # Adding 0.0 turns negated zeros into plain zeros.
    return np.array([m[0, 3], m[1, 3], m[2, 3], -a0, -a1, -a2]) + 0.0


def transform_points(points, matrix) -> np.ndarray:
    """Apply a 4x4 rigid transform to an ``(N, 3)`` array of points."""
    pts = np.asarray(points, dtype=float)
    if pts.size == 0:
        pts = pts.reshape(0, 3)
    if pts.ndim != 2 or pts.shape[1] != 3:
        raise ValueError(f"expected points of shape (N, 3), got {pts.shape}")
    m = _as_matrix(matrix)
    return pts @ m[:3, :3].T + m[:3, 3]