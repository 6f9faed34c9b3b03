import numpy as np
import pytest

from ndtwatch.derivatives import gauss_constants
from ndtwatch.geometry import convert_transform, transform_points
from ndtwatch.scoring import compute_derivatives, compute_hessian
from ndtwatch.voxel_grid import VoxelGridCovariance

RESOLUTION = 1.0
D1, D2 = gauss_constants(0.55, RESOLUTION)
P = np.array([0.05, -0.03, 0.02, 0.01, 0.02, -0.015])


@pytest.fixture(scope="module")
def setup():
    rng = np.random.default_rng(7)
    target = rng.uniform(0.0, 3.0, size=(1500, 3))
    grid = VoxelGridCovariance(leaf_size=RESOLUTION, min_points_per_voxel=6)
    grid.build(target)
    source = target[:40] + rng.normal(0.0, 0.02, size=(40, 3))
    return grid, source


def _score(grid, source, p):
    moved = transform_points(source, convert_transform(p))
    return compute_derivatives(source, moved, grid, RESOLUTION, p, D1, D2)


def test_score_positive_near_target(setup):
    grid, source = setup
    score, _, _ = _score(grid, source, P)
    assert score > 0.0


def test_hessian_symmetric(setup):
    grid, source = setup
    _, _, hessian = _score(grid, source, P)
    assert np.allclose(hessian, hessian.T)
    assert np.any(hessian != 0.0)


def test_without_hessian_keeps_score_and_gradient(setup):
    grid, source = setup
    moved = transform_points(source, convert_transform(P))
    full = compute_derivatives(source, moved, grid, RESOLUTION, P, D1, D2, True)
    partial = compute_derivatives(source, moved, grid, RESOLUTION, P, D1, D2, False)
    assert partial[0] == pytest.approx(full[0])
    assert np.allclose(partial[1], full[1])
    assert np.all(partial[2] == 0.0)


def test_compute_hessian_matches_derivatives(setup):
    grid, source = setup
    moved = transform_points(source, convert_transform(P))
    _, _, expected = compute_derivatives(source, moved, grid, RESOLUTION, P, D1, D2)
    hessian = compute_hessian(source, moved, grid, RESOLUTION, P, D1, D2)
    assert np.allclose(hessian, expected)


def test_gradient_matches_finite_differences(setup):
    grid, source = setup
    _, gradient, _ = _score(grid, source, P)
    h = 1e-6
    for i in range(6):
        step = np.zeros(6)
        step[i] = h
        numeric = (_score(grid, source, P + step)[0] - _score(grid, source, P - step)[0]) / (2 * h)
        assert gradient[i] == pytest.approx(numeric, rel=1e-4, abs=1e-6)


def test_hessian_matches_finite_differences(setup):
    grid, source = setup
    _, _, hessian = _score(grid, source, P)
    h = 1e-6
    for i in range(6):
        step = np.zeros(6)
        step[i] = h
        numeric = (_score(grid, source, P + step)[1] - _score(grid, source, P - step)[1]) / (2 * h)
        assert np.allclose(hessian[i], numeric, rtol=1e-3, atol=1e-4)


def test_far_point_contributes_nothing(setup):
    grid, _ = setup
    far = np.array([[100.0, 100.0, 100.0]])
    score, gradient, hessian = compute_derivatives(far, far, grid, RESOLUTION, np.zeros(6), D1, D2)
    assert score == 0.0
    assert np.all(gradient == 0.0)
    assert np.all(hessian == 0.0)


def test_empty_source(setup):
    grid, _ = setup
    empty = np.zeros((0, 3))
    score, gradient, _ = compute_derivatives(empty, empty, grid, RESOLUTION, np.zeros(6), D1, D2)
    assert score == 0.0
    assert np.all(gradient == 0.0)


def test_too_few_transformed_points(setup):
    grid, source = setup
    with pytest.raises(ValueError):
        compute_derivatives(source, source[:5], grid, RESOLUTION, P, D1, D2)


def test_bad_transform_vector(setup):
    grid, source = setup
    with pytest.raises(ValueError):
        compute_hessian(source, source, grid, RESOLUTION, np.zeros(4), D1, D2)