import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from slamkit.rotation import (
    angle_axis_rotate_point,
    angle_axis_to_quaternion,
    quaternion_to_angle_axis,
)

ANGLE_AXES = [
    [0.1, -0.2, 0.3],
    [1.0, 0.5, -0.7],
    [-2.0, 0.3, 0.9],
    [0.0, 0.0, 2.5],
]


def test_zero_rotation_gives_identity_quaternion():
    q = angle_axis_to_quaternion([0.0, 0.0, 0.0])
    np.testing.assert_allclose(q, [1.0, 0.0, 0.0, 0.0])


@pytest.mark.parametrize("aa", ANGLE_AXES)
def test_quaternion_is_unit(aa):
    q = angle_axis_to_quaternion(aa)
    assert np.linalg.norm(q) == pytest.approx(1.0)


@pytest.mark.parametrize("aa", ANGLE_AXES)
def test_round_trip(aa):
    back = quaternion_to_angle_axis(angle_axis_to_quaternion(aa))
    np.testing.assert_allclose(back, aa, atol=1e-12)


@pytest.mark.parametrize("aa", ANGLE_AXES)
def test_negated_quaternion_gives_same_angle_axis(aa):
    q = angle_axis_to_quaternion(aa)
    np.testing.assert_allclose(
        quaternion_to_angle_axis(-q), quaternion_to_angle_axis(q), atol=1e-12
    )


@pytest.mark.parametrize("aa", ANGLE_AXES)
def test_rotation_matches_rotation_vector(aa):
    point = np.array([0.4, -1.2, 3.3])
    expected = Rotation.from_rotvec(aa).apply(point)
    np.testing.assert_allclose(angle_axis_rotate_point(aa, point), expected, atol=1e-12)


@pytest.mark.parametrize("aa", ANGLE_AXES)
def test_inverse_rotation_restores_point(aa):
    point = np.array([1.5, 2.0, -0.5])
    rotated = angle_axis_rotate_point(aa, point)
    assert np.linalg.norm(rotated) == pytest.approx(np.linalg.norm(point))
    restored = angle_axis_rotate_point(-np.asarray(aa), rotated)
    np.testing.assert_allclose(restored, point, atol=1e-12)


def test_point_on_axis_is_unchanged():
    aa = np.array([0.0, 0.0, 1.2])
    point = np.array([0.0, 0.0, 4.0])
    np.testing.assert_allclose(angle_axis_rotate_point(aa, point), point, atol=1e-12)


def test_tiny_rotation_close_to_exact():
    aa = np.array([1e-9, -2e-9, 3e-9])
    point = np.array([1.0, 2.0, 3.0])
    expected = Rotation.from_rotvec(aa).apply(point)
    np.testing.assert_allclose(angle_axis_rotate_point(aa, point), expected, atol=1e-15)


def test_wrong_shape_raises():
    with pytest.raises(ValueError):
        angle_axis_to_quaternion([1.0, 2.0])
    with pytest.raises(ValueError):
        quaternion_to_angle_axis([1.0, 0.0, 0.0])
    with pytest.raises(ValueError):
        angle_axis_rotate_point([0.0, 0.0, 1.0], [1.0, 2.0])