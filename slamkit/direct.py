"""Sparse direct method: photometric camera pose estimation over an image pyramid."""

from __future__ import annotations

from typing import Optional

import numpy as np

from slamkit.camera import PinholeCamera
from slamkit.imaging import _gray, _sample_edge, build_pyramid
from slamkit.lie import SE3

KITTI_CAMERA = PinholeCamera(718.856, 718.856, 607.1928, 185.2157)
HALF_PATCH_SIZE = 1
ITERATIONS = 10
CONVERGENCE = 1e-3
PYRAMID_LEVELS = 4
PYRAMID_SCALE = 0.5
_SCALES = (1.0, 0.5, 0.25, 0.125)

_OX, _OY = (
    g.ravel()
    for g in np.meshgrid(
        np.arange(-HALF_PATCH_SIZE, HALF_PATCH_SIZE + 1, dtype=float),
        np.arange(-HALF_PATCH_SIZE, HALF_PATCH_SIZE + 1, dtype=float),
        indexing="ij",
    )
)


def _pixels(px_ref) -> np.ndarray:
    arr = np.asarray(px_ref, dtype=float)
    if arr.size == 0:
        return arr.reshape(0, 2)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError(f"px_ref must have shape (N, 2), got {arr.shape}")
    return arr


def _inputs(px_ref, depth_ref) -> tuple[np.ndarray, np.ndarray]:
    px = _pixels(px_ref)
    depth = np.asarray(depth_ref, dtype=float).reshape(-1)
    if len(depth) != len(px):
        raise ValueError("px_ref and depth_ref must have the same number of entries")
    return px, depth


def accumulate_jacobian(
    img1,
    img2,
    px_ref,
    depth_ref,
    pose: Optional[SE3] = None,
    camera: Optional[PinholeCamera] = None,
) -> tuple[np.ndarray, np.ndarray, float, np.ndarray]:
    """Build the photometric normal equations for reference pixels with known depth.

    Returns ``(H, b, cost, projection)``: the 6x6 Hessian, the 6-vector bias, the
    summed squared error divided by the number of usable points, and the
    projected pixel of every reference point in ``img2`` (zero where unusable).
    """
    a = _gray(img1, 1).astype(float, copy=False)
    c = _gray(img2, 1).astype(float, copy=False)
    px, depth = _inputs(px_ref, depth_ref)
    pose = SE3() if pose is None else pose
    camera = KITTI_CAMERA if camera is None else camera
    fx, fy, cx, cy = camera.fx, camera.fy, camera.cx, camera.cy

    H = np.zeros((6, 6))
    b = np.zeros(6)
    projection = np.zeros_like(px)
    if len(px) == 0:
        return H, b, 0.0, projection

    point_ref = depth[:, None] * np.stack(
        ((px[:, 0] - cx) / fx, (px[:, 1] - cy) / fy, np.ones(len(px))), axis=-1
    )
    point_cur = pose.apply(point_ref)
    X, Y, Z = point_cur[:, 0], point_cur[:, 1], point_cur[:, 2]
    with np.errstate(divide="ignore", invalid="ignore"):
        u = fx * X / Z + cx
        v = fy * Y / Z + cy
    rows, cols = c.shape
    half = HALF_PATCH_SIZE
    valid = (
        ~(Z < 0)
        & np.isfinite(u)
        & np.isfinite(v)
        & (u >= half)
        & (u <= cols - half)
        & (v >= half)
        & (v <= rows - half)
    )
    cnt_good = int(valid.sum())
    if cnt_good == 0:
        return H, b, 0.0, projection

    u, v = u[valid], v[valid]
    X, Y, Z = X[valid], Y[valid], Z[valid]
    projection[valid] = np.stack((u, v), axis=-1)
    ref = px[valid]

    cu = u[:, None] + _OX
    cv = v[:, None] + _OY
    error = _sample_edge(a, ref[:, 0, None] + _OX, ref[:, 1, None] + _OY) - _sample_edge(
        c, cu, cv
    )
    gx = 0.5 * (_sample_edge(c, cu + 1.0, cv) - _sample_edge(c, cu - 1.0, cv))
    gy = 0.5 * (_sample_edge(c, cu, cv + 1.0) - _sample_edge(c, cu, cv - 1.0))

    z_inv = 1.0 / Z
    z2_inv = z_inv * z_inv
    zero = np.zeros_like(X)
    row0 = np.stack(
        (
            fx * z_inv,
            zero,
            -fx * X * z2_inv,
            -fx * X * Y * z2_inv,
            fx + fx * X * X * z2_inv,
            -fx * Y * z_inv,
        ),
        axis=-1,
    )
    row1 = np.stack(
        (
            zero,
            fy * z_inv,
            -fy * Y * z2_inv,
            -fy - fy * Y * Y * z2_inv,
            fy * X * Y * z2_inv,
            fy * X * z_inv,
        ),
        axis=-1,
    )
    J = -(gx[..., None] * row0[:, None, :] + gy[..., None] * row1[:, None, :])

    H = np.einsum("mki,mkj->ij", J, J)
    b = -np.einsum("mk,mki->i", error, J)
    cost = float((error * error).sum()) / cnt_good
    return H, b, cost, projection


def _solve(H: np.ndarray, b: np.ndarray) -> Optional[np.ndarray]:
    try:
        update = np.linalg.solve(H, b)
    except np.linalg.LinAlgError:
        return None
    if not np.all(np.isfinite(update)):
        return None
    return update


def direct_pose_single_layer(
    img1,
    img2,
    px_ref,
    depth_ref,
    camera: Optional[PinholeCamera] = None,
    pose: Optional[SE3] = None,
) -> SE3:
    """Refine the pose of ``img2`` relative to ``img1`` on one image level.

    Each Gauss-Newton step is applied to the pose; iteration stops when the
    step cannot be solved, when the cost rises, or when the step is below 1e-3.
    """
    pose = SE3() if pose is None else pose
    camera = KITTI_CAMERA if camera is None else camera
    last_cost = 0.0
    for it in range(ITERATIONS):
        H, b, cost, _ = accumulate_jacobian(img1, img2, px_ref, depth_ref, pose, camera)
        update = _solve(H, b)
        if update is None:
            break
        pose = SE3.exp(update) @ pose
        if it > 0 and cost > last_cost:
            break
        if float(np.linalg.norm(update)) < CONVERGENCE:
            break
        last_cost = cost
    return pose


def direct_pose_multi_layer(
    img1,
    img2,
    px_ref,
    depth_ref,
    camera: Optional[PinholeCamera] = None,
    pose: Optional[SE3] = None,
) -> SE3:
    """Refine the pose coarse to fine over a four-level pyramid of scale 0.5."""
    pose = SE3() if pose is None else pose
    camera = KITTI_CAMERA if camera is None else camera
    px, depth = _inputs(px_ref, depth_ref)
    pyr1 = build_pyramid(img1, PYRAMID_LEVELS, PYRAMID_SCALE)
    pyr2 = build_pyramid(img2, PYRAMID_LEVELS, PYRAMID_SCALE)
    for level in range(PYRAMID_LEVELS - 1, -1, -1):
        scale = _SCALES[level]
        pose = direct_pose_single_layer(
            pyr1[level], pyr2[level], px * scale, depth, camera.scaled(scale), pose
        )
    return pose