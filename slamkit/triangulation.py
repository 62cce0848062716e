"""Linear two-view triangulation."""

from __future__ import annotations

import numpy as np

from slamkit.camera import pixel_to_camera

DEPTH_UPPER = 50.0
DEPTH_LOWER = 10.0


def _projection(P, name: str) -> np.ndarray:
    arr = np.asarray(P, dtype=float)
    if arr.shape != (3, 4):
        raise ValueError(f"{name} must be 3x4, got {arr.shape}")
    return arr


def _points(pts, name: str) -> np.ndarray:
    arr = np.atleast_2d(np.asarray(pts, dtype=float))
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError(f"{name} must have shape (N, 2), got {arr.shape}")
    return arr


def triangulate_points(proj1, proj2, pts1, pts2) -> np.ndarray:
    """Triangulate matched points by DLT, returning homogeneous ``(N, 4)`` points."""
    P1 = _projection(proj1, "proj1")
    P2 = _projection(proj2, "proj2")
    x1 = _points(pts1, "pts1")
    x2 = _points(pts2, "pts2")
    if x1.shape != x2.shape:
        raise ValueError("pts1 and pts2 must have the same number of points")
    A = np.stack(
        (
            x1[:, 0, None] * P1[2] - P1[0],
            x1[:, 1, None] * P1[2] - P1[1],
            x2[:, 0, None] * P2[2] - P2[0],
            x2[:, 1, None] * P2[2] - P2[1],
        ),
        axis=1,
    )
    _, _, vt = np.linalg.svd(A)
    return vt[:, -1, :]


def triangulate(points1, points2, R, t, K) -> np.ndarray:
    """Triangulate pixel matches seen from ``[I|0]`` and ``[R|t]``; returns ``(N, 3)``."""
    rot = np.asarray(R, dtype=float)
    if rot.shape != (3, 3):
        raise ValueError(f"R must be 3x3, got {rot.shape}")
    trans = np.asarray(t, dtype=float).reshape(-1)
    if trans.shape != (3,):
        raise ValueError(f"t must have 3 elements, got {trans.size}")
    T1 = np.hstack((np.eye(3), np.zeros((3, 1))))
    T2 = np.hstack((rot, trans.reshape(3, 1)))
    n1 = pixel_to_camera(_points(points1, "points1"), K)
    n2 = pixel_to_camera(_points(points2, "points2"), K)
    homogeneous = triangulate_points(T1, T2, n1, n2)
    return homogeneous[:, :3] / homogeneous[:, 3:4]


def depth_color(depth: float) -> tuple[float, float, float]:
    """Return a BGR colour for plotting a point at ``depth`` (clamped to 10..50)."""
    th_range = DEPTH_UPPER - DEPTH_LOWER
    d = min(max(depth, DEPTH_LOWER), DEPTH_UPPER)
    return (255.0 * d / th_range, 0.0, 255.0 * (1.0 - d / th_range))