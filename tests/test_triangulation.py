import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from slamkit.triangulation import depth_color, triangulate, triangulate_points

K_TUM = np.array([[520.9, 0, 325.1], [0, 521.0, 249.7], [0, 0, 1]])


def _scene(seed=7, n=12):
    rng = np.random.default_rng(seed)
    R = Rotation.from_rotvec([0.02, -0.08, 0.03]).as_matrix()
    t = np.array([-1.0, 0.05, 0.1])
    points = np.column_stack(
        (rng.uniform(-1, 1, n), rng.uniform(-1, 1, n), rng.uniform(4, 8, n))
    )
    return R, t, points


def _project(points, R, t):
    cam = (R @ points.T).T + t
    pix = (K_TUM @ cam.T).T
    return pix[:, :2] / pix[:, 2:]


def test_triangulate_recovers_points():
    R, t, points = _scene()
    p1 = _project(points, np.eye(3), np.zeros(3))
    p2 = _project(points, R, t)
    recovered = triangulate(p1, p2, R, t, K_TUM)
    assert recovered.shape == points.shape
    np.testing.assert_allclose(recovered, points, atol=1e-8)


def test_triangulate_points_homogeneous_output():
    R, t, points = _scene(seed=11, n=5)
    P1 = np.hstack((np.eye(3), np.zeros((3, 1))))
    P2 = np.hstack((R, t.reshape(3, 1)))
    x1 = points[:, :2] / points[:, 2:]
    cam2 = (R @ points.T).T + t
    x2 = cam2[:, :2] / cam2[:, 2:]
    h = triangulate_points(P1, P2, x1, x2)
    assert h.shape == (5, 4)
    np.testing.assert_allclose(np.linalg.norm(h, axis=1), 1.0)
    np.testing.assert_allclose(h[:, :3] / h[:, 3:], points, atol=1e-8)


def test_mismatched_inputs_raise():
    P = np.hstack((np.eye(3), np.zeros((3, 1))))
    with pytest.raises(ValueError):
        triangulate_points(P, P, [[0.0, 0.0]], [[0.0, 0.0], [1.0, 1.0]])
    with pytest.raises(ValueError):
        triangulate_points(np.eye(3), P, [[0.0, 0.0]], [[0.0, 0.0]])
    with pytest.raises(ValueError):
        triangulate([[0.0, 0.0]], [[0.0, 0.0]], np.eye(3), [1.0, 0.0], K_TUM)


def test_depth_color_clamps():
    assert depth_color(2.0) == depth_color(10.0)
    assert depth_color(500.0) == depth_color(50.0)


@pytest.mark.parametrize("depth", [10.0, 20.0, 33.3, 50.0])
def test_depth_color_invariants(depth):
    blue, green, red = depth_color(depth)
    assert green == 0.0
    assert blue + red == pytest.approx(255.0)


def test_depth_color_blue_grows_with_depth():
    assert depth_color(15.0)[0] < depth_color(40.0)[0]