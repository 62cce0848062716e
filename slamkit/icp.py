"""3D-3D pose estimation: ICP by SVD and by Levenberg-Marquardt refinement."""

from __future__ import annotations

from typing import Iterable

import numpy as np

from slamkit.camera import pixel_to_camera
from slamkit.features import Match
from slamkit.lie import SE3

DEPTH_SCALE = 5000.0
_LM_TAU = 1e-5
_LM_MAX_TRIALS = 10


def _array(values, dim: int, name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return arr.reshape(0, dim)
    if arr.ndim != 2 or arr.shape[1] != dim:
        raise ValueError(f"{name} must have shape (N, {dim}), got {arr.shape}")
    return arr


def _pairs(points1, points2) -> tuple[np.ndarray, np.ndarray]:
    p1 = _array(points1, 3, "points1")
    p2 = _array(points2, 3, "points2")
    if len(p1) != len(p2):
        raise ValueError("points1 and points2 must have the same number of points")
    if len(p1) == 0:
        raise ValueError("at least one point pair is required")
    return p1, p2


def points_from_depth_pair(
    keypoints1, keypoints2, matches: Iterable[Match], depth1, depth2, K
) -> tuple[np.ndarray, np.ndarray]:
    """Back-project matched keypoints of both views using their depth images.

    Depths are scaled by 5000; matches with a zero depth in either view are skipped.
    """
    d1_img = np.asarray(depth1)
    d2_img = np.asarray(depth2)
    if d1_img.ndim != 2 or d2_img.ndim != 2:
        raise ValueError("depth images must be 2-D")
    kp1 = _array(keypoints1, 2, "keypoints1")
    kp2 = _array(keypoints2, 2, "keypoints2")
    pts1, pts2 = [], []
    for m in matches:
        x1, y1 = kp1[m.query_idx]
        x2, y2 = kp2[m.train_idx]
        d1 = d1_img[int(y1), int(x1)]
        d2 = d2_img[int(y2), int(x2)]
        if d1 == 0 or d2 == 0:
            continue
        n1 = pixel_to_camera((x1, y1), K)
        n2 = pixel_to_camera((x2, y2), K)
        dd1 = float(d1) / DEPTH_SCALE
        dd2 = float(d2) / DEPTH_SCALE
        pts1.append((n1[0] * dd1, n1[1] * dd1, dd1))
        pts2.append((n2[0] * dd2, n2[1] * dd2, dd2))
    return np.array(pts1, dtype=float).reshape(-1, 3), np.array(
        pts2, dtype=float
    ).reshape(-1, 3)


def icp_svd(points1, points2) -> tuple[np.ndarray, np.ndarray]:
    """Return ``(R, t)`` minimising ``|p1 - (R p2 + t)|`` over all pairs."""
    p1, p2 = _pairs(points1, points2)
    c1 = p1.mean(axis=0)
    c2 = p2.mean(axis=0)
    W = (p1 - c1).T @ (p2 - c2)
    U, _, Vt = np.linalg.svd(W)
    R = U @ Vt
    if np.linalg.det(R) < 0:
        R = -R
    t = c1 - R @ c2
    return R, t


def _hats(q: np.ndarray) -> np.ndarray:
    out = np.zeros((len(q), 3, 3))
    out[:, 0, 1] = -q[:, 2]
    out[:, 0, 2] = q[:, 1]
    out[:, 1, 0] = q[:, 2]
    out[:, 1, 2] = -q[:, 0]
    out[:, 2, 0] = -q[:, 1]
    out[:, 2, 1] = q[:, 0]
    return out


def _linearize(p1, p2, pose: SE3) -> tuple[np.ndarray, np.ndarray, np.ndarray, float]:
    q = pose.apply(p2)
    e = p1 - q
    J = np.zeros((len(q), 3, 6))
    J[:, :, :3] = -np.eye(3)
    J[:, :, 3:] = _hats(q)
    H = np.einsum("nki,nkj->ij", J, J)
    b = np.einsum("nki,nk->i", J, e)
    return H, b, e, float((e * e).sum())


def icp_bundle_adjustment(points1, points2, iterations: int = 10) -> SE3:
    """Estimate ``T`` with ``p1 = T p2`` by Levenberg-Marquardt from the identity."""
    p1, p2 = _pairs(points1, points2)
    pose = SE3()
    H, b, _, chi = _linearize(p1, p2, pose)
    lam = _LM_TAU * float(np.max(np.diag(H)))
    nu = 2.0
    for _ in range(iterations):
        accepted = False
        for _trial in range(_LM_MAX_TRIALS):
            try:
                dx = np.linalg.solve(H + lam * np.eye(6), -b)
            except np.linalg.LinAlgError:
                return pose
            if not np.all(np.isfinite(dx)):
                return pose
            candidate = SE3.exp(dx) @ pose
            e_new = p1 - candidate.apply(p2)
            chi_new = float((e_new * e_new).sum())
            predicted = float(dx @ (lam * dx - b))
            rho = (chi - chi_new) / predicted if predicted > 0 else -1.0
            if rho > 0 and np.isfinite(chi_new):
                pose = candidate
                lam *= max(1.0 / 3.0, 1.0 - (2.0 * rho - 1.0) ** 3)
                nu = 2.0
                H, b, _, chi = _linearize(p1, p2, pose)
                accepted = True
                break
            lam *= nu
            nu *= 2.0
        if not accepted:
            break
    return pose