"""Lucas-Kanade optical flow by Gauss-Newton, single level and pyramidal."""

from __future__ import annotations

from typing import Optional

import numpy as np

from slamkit.imaging import _gray, _sample, build_pyramid

HALF_PATCH_SIZE = 4
ITERATIONS = 10
CONVERGENCE = 1e-2
PYRAMID_LEVELS = 4
PYRAMID_SCALE = 0.5

_OX, _OY = (
    g.ravel()
    for g in np.meshgrid(
        np.arange(-HALF_PATCH_SIZE, HALF_PATCH_SIZE, dtype=float),
        np.arange(-HALF_PATCH_SIZE, HALF_PATCH_SIZE, dtype=float),
        indexing="ij",
    )
)


def _keypoints(points, name: str) -> np.ndarray:
    arr = np.asarray(points, dtype=float)
    if arr.size == 0:
        return arr.reshape(0, 2)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError(f"{name} must have shape (N, 2), got {arr.shape}")
    return arr


def _gradient(img: np.ndarray, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    gx = 0.5 * (_sample(img, x + 1.0, y) - _sample(img, x - 1.0, y))
    gy = 0.5 * (_sample(img, x, y + 1.0) - _sample(img, x, y - 1.0))
    return -np.stack((gx, gy), axis=-1)


def _solve(H: np.ndarray, b: np.ndarray) -> Optional[np.ndarray]:
    try:
        update = np.linalg.solve(H, b)
    except np.linalg.LinAlgError:
        return None
    if not np.all(np.isfinite(update)):
        return None
    return update


def _track(
    img1: np.ndarray,
    img2: np.ndarray,
    x0: float,
    y0: float,
    dx: float,
    dy: float,
    inverse: bool,
) -> tuple[float, float, bool]:
    px = x0 + _OX
    py = y0 + _OY
    ref = _sample(img1, px, py)
    J = H = None
    if inverse:
        J = _gradient(img1, px, py)
        H = J.T @ J

    last_cost = 0.0
    succ = True
    for it in range(ITERATIONS):
        error = ref - _sample(img2, px + dx, py + dy)
        if not inverse:
            J = _gradient(img2, px + dx, py + dy)
            H = J.T @ J
        b = -(J.T @ error)
        cost = float(error @ error)

        update = _solve(H, b)
        if update is None:
            succ = False
            break
        if it > 0 and cost > last_cost:
            break

        dx += float(update[0])
        dy += float(update[1])
        last_cost = cost
        succ = True
        if float(np.linalg.norm(update)) < CONVERGENCE:
            break
    return dx, dy, succ


def optical_flow_single_level(
    img1,
    img2,
    kp1,
    kp2=None,
    inverse: bool = False,
    has_initial: bool = False,
) -> tuple[np.ndarray, np.ndarray]:
    """Track keypoints ``kp1`` of ``img1`` into ``img2`` on one image level.

    With ``has_initial`` the positions in ``kp2`` are the starting guesses.
    ``inverse`` uses the inverse-compositional form, whose Jacobian comes from
    ``img1`` and is computed once. Returns the tracked points ``(N, 2)`` and a
    boolean success flag per point.
    """
    a = _gray(img1, 2).astype(float, copy=False)
    b = _gray(img2, 2).astype(float, copy=False)
    p1 = _keypoints(kp1, "kp1")
    if has_initial:
        if kp2 is None:
            raise ValueError("kp2 is required when has_initial is set")
        p2 = _keypoints(kp2, "kp2")
        if p2.shape != p1.shape:
            raise ValueError("kp1 and kp2 must have the same number of points")
    tracked = np.empty_like(p1)
    success = np.zeros(len(p1), dtype=bool)
    for i, (x, y) in enumerate(p1):
        dx = dy = 0.0
        if has_initial:
            dx = float(p2[i, 0] - x)
            dy = float(p2[i, 1] - y)
        dx, dy, succ = _track(a, b, float(x), float(y), dx, dy, inverse)
        tracked[i] = (x + dx, y + dy)
        success[i] = succ
    return tracked, success


def optical_flow_multi_level(
    img1, img2, kp1, inverse: bool = False
) -> tuple[np.ndarray, np.ndarray]:
    """Track keypoints coarse to fine over a four-level pyramid of scale 0.5."""
    pyr1 = build_pyramid(img1, PYRAMID_LEVELS, PYRAMID_SCALE)
    pyr2 = build_pyramid(img2, PYRAMID_LEVELS, PYRAMID_SCALE)
    top_scale = PYRAMID_SCALE ** (PYRAMID_LEVELS - 1)
    kp1_pyr = _keypoints(kp1, "kp1") * top_scale
    kp2_pyr = kp1_pyr.copy()
    success = np.zeros(len(kp1_pyr), dtype=bool)
    for level in range(PYRAMID_LEVELS - 1, -1, -1):
        kp2_pyr, success = optical_flow_single_level(
            pyr1[level], pyr2[level], kp1_pyr, kp2_pyr, inverse, True
        )
        if level > 0:
            kp1_pyr = kp1_pyr / PYRAMID_SCALE
            kp2_pyr = kp2_pyr / PYRAMID_SCALE
    return kp2_pyr, success