import numpy as np
import pytest

from slamkit.camera import PinholeCamera, pixel_to_camera
from slamkit.features import Match
from slamkit.lie import SE3
from slamkit.pnp import (
    bundle_adjustment_gauss_newton,
    optimize_pose,
    points_from_depth,
    projection_jacobian,
)

K = PinholeCamera().matrix()


def _project(points):
    fx, fy, cx, cy = K[0, 0], K[1, 1], K[0, 2], K[1, 2]
    return np.stack(
        (fx * points[:, 0] / points[:, 2] + cx, fy * points[:, 1] / points[:, 2] + cy),
        axis=-1,
    )


@pytest.fixture
def scene():
    rng = np.random.default_rng(0)
    n = 40
    pts = np.column_stack(
        (rng.uniform(-1, 1, n), rng.uniform(-1, 1, n), rng.uniform(2, 5, n))
    )
    true_pose = SE3.exp([0.05, -0.02, 0.1, 0.02, -0.03, 0.01])
    return pts, _project(true_pose.apply(pts)), true_pose


def test_gauss_newton_recovers_pose(scene):
    pts, obs, true_pose = scene
    pose = bundle_adjustment_gauss_newton(pts, obs, K)
    assert np.allclose(pose.matrix(), true_pose.matrix(), atol=1e-5)


def test_gauss_newton_keeps_exact_pose(scene):
    pts, obs, true_pose = scene
    pose = bundle_adjustment_gauss_newton(pts, obs, K, pose=true_pose)
    assert np.allclose(pose.matrix(), true_pose.matrix(), atol=1e-8)


def test_gauss_newton_zero_iterations_returns_start(scene):
    pts, obs, _ = scene
    pose = bundle_adjustment_gauss_newton(pts, obs, K, iterations=0)
    assert np.allclose(pose.matrix(), np.eye(4))


def test_optimize_pose_recovers_pose(scene):
    pts, obs, true_pose = scene
    pose = optimize_pose(pts, obs, K)
    assert np.allclose(pose.matrix(), true_pose.matrix(), atol=1e-5)


def test_projection_jacobian_matches_finite_differences():
    pc = np.array([0.3, -0.4, 2.5])
    J = projection_jacobian(pc, K)
    eps = 1e-6
    numeric = np.zeros((2, 6))
    for k in range(6):
        step = np.zeros(6)
        step[k] = eps
        plus = -_project(SE3.exp(step).apply(pc)[None, :])[0]
        minus = -_project(SE3.exp(-step).apply(pc)[None, :])[0]
        numeric[:, k] = (plus - minus) / (2 * eps)
    assert np.allclose(J, numeric, rtol=1e-4, atol=1e-4)


def test_points_from_depth_back_projects_and_skips_zero():
    depth = np.zeros((480, 640), dtype=np.uint16)
    depth[50, 100] = 5000
    kp1 = [(100.0, 50.0), (200.0, 60.0)]
    kp2 = [(110.0, 55.0), (210.0, 65.0)]
    matches = [Match(0, 0, 10.0), Match(1, 1, 12.0)]
    pts_3d, pts_2d = points_from_depth(kp1, kp2, matches, depth, K)
    assert pts_3d.shape == (1, 3)
    expected = pixel_to_camera((100.0, 50.0), K)
    assert np.allclose(pts_3d[0], [expected[0], expected[1], 1.0])
    assert np.allclose(pts_2d[0], kp2[0])


def test_mismatched_point_counts_raise():
    with pytest.raises(ValueError):
        bundle_adjustment_gauss_newton(np.ones((3, 3)), np.ones((2, 2)), K)


def test_projection_jacobian_rejects_bad_point():
    with pytest.raises(ValueError):
        projection_jacobian([1.0, 2.0], K)