import numpy as np
import pytest

from slamkit.reprojection import project_with_distortion, reprojection_residual
from slamkit.rotation import angle_axis_rotate_point


def _camera(rotation=(0.0, 0.0, 0.0), translation=(0.0, 0.0, 0.0), f=10.0, k1=0.0, k2=0.0):
    return np.array([*rotation, *translation, f, k1, k2])


def test_simple_projection():
    pred = project_with_distortion(_camera(), [2.0, 4.0, -2.0])
    np.testing.assert_allclose(pred, [10.0, 20.0])


def test_residual_is_prediction_minus_observation():
    cam = _camera(rotation=(0.1, -0.2, 0.05), translation=(0.3, 0.1, -5.0), k1=0.01)
    point = [0.5, -0.4, 1.0]
    pred = project_with_distortion(cam, point)
    np.testing.assert_allclose(reprojection_residual(cam, point, pred), [0.0, 0.0], atol=1e-12)
    shifted = reprojection_residual(cam, point, pred + [1.0, -2.0])
    np.testing.assert_allclose(shifted, [-1.0, 2.0], atol=1e-12)


def test_positive_distortion_pushes_radially_outward():
    point = [1.0, 2.0, -4.0]
    plain = project_with_distortion(_camera(), point)
    distorted = project_with_distortion(_camera(k1=0.2, k2=0.1), point)
    cross = plain[0] * distorted[1] - plain[1] * distorted[0]
    assert cross == pytest.approx(0.0, abs=1e-12)
    assert np.linalg.norm(distorted) > np.linalg.norm(plain)


def test_rotation_matches_rotating_the_point():
    aa = np.array([0.0, 0.0, np.pi / 3])
    point = np.array([1.0, 0.5, -3.0])
    rotated = project_with_distortion(_camera(rotation=aa, k1=0.05), point)
    direct = project_with_distortion(
        _camera(k1=0.05), angle_axis_rotate_point(aa, point)
    )
    np.testing.assert_allclose(rotated, direct, atol=1e-12)


def test_bad_camera_shape_raises():
    with pytest.raises(ValueError):
        project_with_distortion(np.zeros(8), [0.0, 0.0, -1.0])


def test_bad_observation_shape_raises():
    with pytest.raises(ValueError):
        reprojection_residual(_camera(), [0.0, 0.0, -1.0], [1.0, 2.0, 3.0])