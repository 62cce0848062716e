"""3D-2D pose estimation: depth back-projection and reprojection minimisation."""

from __future__ import annotations

from typing import Iterable, Optional

import numpy as np

from slamkit.camera import pixel_to_camera
from slamkit.features import Match
from slamkit.lie import SE3

DEPTH_SCALE = 5000.0
CONVERGENCE = 1e-6


def _intrinsics(K) -> tuple[float, float, float, float]:
    k = np.asarray(K, dtype=float)
    if k.shape != (3, 3):
        raise ValueError(f"K must be 3x3, got {k.shape}")
    return k[0, 0], k[1, 1], k[0, 2], k[1, 2]


def _array(values, dim: int, name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return arr.reshape(0, dim)
    if arr.ndim != 2 or arr.shape[1] != dim:
        raise ValueError(f"{name} must have shape (N, {dim}), got {arr.shape}")
    return arr


def _pairs(points_3d, points_2d) -> tuple[np.ndarray, np.ndarray]:
    p3 = _array(points_3d, 3, "points_3d")
    p2 = _array(points_2d, 2, "points_2d")
    if len(p3) != len(p2):
        raise ValueError("points_3d and points_2d must have the same number of points")
    return p3, p2


def points_from_depth(
    keypoints1, keypoints2, matches: Iterable[Match], depth, K
) -> tuple[np.ndarray, np.ndarray]:
    """Build 3D points in the first camera and their pixels in the second.

    ``depth`` is a 16-bit depth image of the first view scaled by 5000; matches
    whose depth is zero are skipped.
    """
    depth_img = np.asarray(depth)
    if depth_img.ndim != 2:
        raise ValueError(f"depth must be a 2-D image, got shape {depth_img.shape}")
    kp1 = _array(keypoints1, 2, "keypoints1")
    kp2 = _array(keypoints2, 2, "keypoints2")
    pts_3d, pts_2d = [], []
    for m in matches:
        x, y = kp1[m.query_idx]
        d = depth_img[int(y), int(x)]
        if d == 0:
            continue
        dd = float(d) / DEPTH_SCALE
        nx, ny = pixel_to_camera((x, y), K)
        pts_3d.append((nx * dd, ny * dd, dd))
        pts_2d.append(kp2[m.train_idx])
    return np.array(pts_3d, dtype=float).reshape(-1, 3), np.array(
        pts_2d, dtype=float
    ).reshape(-1, 2)


def _jacobians(pc: np.ndarray, fx: float, fy: float) -> np.ndarray:
    X, Y, Z = pc[:, 0], pc[:, 1], pc[:, 2]
    inv_z = 1.0 / Z
    inv_z2 = inv_z * inv_z
    zero = np.zeros_like(X)
    row0 = np.stack(
        (
            -fx * inv_z,
            zero,
            fx * X * inv_z2,
            fx * X * Y * inv_z2,
            -fx - fx * X * X * inv_z2,
            fx * Y * inv_z,
        ),
        axis=-1,
    )
    row1 = np.stack(
        (
            zero,
            -fy * inv_z,
            fy * Y * inv_z2,
            fy + fy * Y * Y * inv_z2,
            -fy * X * Y * inv_z2,
            -fy * X * inv_z,
        ),
        axis=-1,
    )
    return np.stack((row0, row1), axis=1)


def projection_jacobian(point_cam, K) -> np.ndarray:
    """Jacobian (2x6) of the reprojection error at a camera-frame point."""
    fx, fy, _, _ = _intrinsics(K)
    p = np.asarray(point_cam, dtype=float)
    if p.shape != (3,):
        raise ValueError(f"point_cam must have shape (3,), got {p.shape}")
    return _jacobians(p[None, :], fx, fy)[0]


def _linearize(p3, p2, K, pose: SE3) -> tuple[np.ndarray, np.ndarray]:
    fx, fy, cx, cy = _intrinsics(K)
    pc = pose.apply(p3)
    proj = np.stack(
        (fx * pc[:, 0] / pc[:, 2] + cx, fy * pc[:, 1] / pc[:, 2] + cy), axis=-1
    )
    return p2 - proj, _jacobians(pc, fx, fy)


def _normal_equations(e: np.ndarray, J: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    H = np.einsum("nki,nkj->ij", J, J)
    b = -np.einsum("nki,nk->i", J, e)
    return H, b


def _solve(H: np.ndarray, b: np.ndarray) -> Optional[np.ndarray]:
    try:
        dx = np.linalg.solve(H, b)
    except np.linalg.LinAlgError:
        return None
    if not np.all(np.isfinite(dx)):
        return None
    return dx


def bundle_adjustment_gauss_newton(
    points_3d, points_2d, K, pose: Optional[SE3] = None, iterations: int = 10
) -> SE3:
    """Refine the camera pose by Gauss-Newton on the reprojection error.

    Stops early when the step is not finite, when the cost stops decreasing,
    or when the step norm falls below 1e-6.
    """
    p3, p2 = _pairs(points_3d, points_2d)
    pose = SE3() if pose is None else pose
    last_cost = 0.0
    for it in range(iterations):
        e, J = _linearize(p3, p2, K, pose)
        cost = float((e * e).sum())
        H, b = _normal_equations(e, J)
        dx = _solve(H, b)
        if dx is None:
            break
        if it > 0 and cost >= last_cost:
            break
        pose = SE3.exp(dx) @ pose
        last_cost = cost
        if float(np.linalg.norm(dx)) < CONVERGENCE:
            break
    return pose


def optimize_pose(points_3d, points_2d, K, iterations: int = 10) -> SE3:
    """Estimate the pose from the identity with plain Gauss-Newton graph steps."""
    p3, p2 = _pairs(points_3d, points_2d)
    pose = SE3()
    for _ in range(iterations):
        e, J = _linearize(p3, p2, K, pose)
        H, b = _normal_equations(e, J)
        dx = _solve(H, b)
        if dx is None:
            break
        pose = SE3.exp(dx) @ pose
    return pose