import numpy as np
import pytest

from ndtwatch.cloud import PointCloud
from ndtwatch.geometry import convert_transform


def _cloud():
    pts = np.arange(18, dtype=float).reshape(6, 3)
    return PointCloud(
        points=pts,
        width=3,
        height=2,
        header={"frame_id": "map", "seq": 4},
        is_dense=False,
        fields={"intensity": np.arange(6, dtype=float) * 10},
    )


def test_default_layout_is_unorganized():
    cloud = PointCloud([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
    assert len(cloud) == 2
    assert (cloud.width, cloud.height) == (2, 1)


def test_empty_cloud():
    cloud = PointCloud([])
    assert len(cloud) == 0
    assert cloud.points.shape == (0, 3)


def test_bad_point_shape_raises():
    with pytest.raises(ValueError):
        PointCloud(np.ones((3, 2)))


def test_layout_mismatch_raises():
    with pytest.raises(ValueError):
        PointCloud(np.ones((6, 3)), width=4, height=2)


def test_field_length_mismatch_raises():
    with pytest.raises(ValueError):
        PointCloud(np.ones((3, 3)), fields={"intensity": [1.0, 2.0]})


def test_copy_is_independent():
    cloud = _cloud()
    dup = cloud.copy()
    dup.points[0, 0] = -99.0
    dup.fields["intensity"][0] = -1.0
    dup.header["frame_id"] = "other"
    assert cloud.points[0, 0] == 0.0
    assert cloud.fields["intensity"][0] == 0.0
    assert cloud.header["frame_id"] == "map"
    np.testing.assert_array_equal(dup.points[1:], cloud.points[1:])


def test_select_subset_is_unorganized():
    cloud = _cloud()
    sub = cloud.select([4, 1])
    np.testing.assert_array_equal(sub.points, cloud.points[[4, 1]])
    np.testing.assert_array_equal(sub.fields["intensity"], cloud.fields["intensity"][[4, 1]])
    assert (sub.width, sub.height) == (2, 1)
    assert sub.header == cloud.header
    assert sub.is_dense is False


def test_select_all_keeps_layout():
    cloud = _cloud()
    full = cloud.select(range(len(cloud)))
    assert (full.width, full.height) == (3, 2)
    np.testing.assert_array_equal(full.points, cloud.points)


def test_select_out_of_range_raises():
    with pytest.raises(IndexError):
        _cloud().select([0, 6])


def test_select_negative_index_raises():
    with pytest.raises(IndexError):
        _cloud().select([-1])


def test_transformed_moves_points_and_keeps_fields():
    cloud = _cloud()
    moved = cloud.transformed(convert_transform([1.0, 2.0, 3.0, 0, 0, 0]))
    np.testing.assert_allclose(moved.points - cloud.points, np.tile([1.0, 2.0, 3.0], (6, 1)))
    np.testing.assert_array_equal(moved.fields["intensity"], cloud.fields["intensity"])
    assert (moved.width, moved.height) == (3, 2)
    assert cloud.points[0, 0] == 0.0


def test_transform_round_trip():
    cloud = _cloud()
    m = convert_transform([0.5, -1.0, 2.0, 0.3, -0.4, 1.1])
    back = cloud.transformed(m).transformed(np.linalg.inv(m))
    np.testing.assert_allclose(back.points, cloud.points, atol=1e-9)