"""Pinhole camera model and epipolar geometry helpers."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class PinholeCamera:
    """Pinhole intrinsics; the defaults are the TUM Freiburg2 calibration."""

    fx: float = 520.9
    fy: float = 521.0
    cx: float = 325.1
    cy: float = 249.7

    def matrix(self) -> np.ndarray:
        """Return the 3x3 intrinsic matrix K."""
        return np.array(
            [[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]]
        )

    def scaled(self, factor: float) -> "PinholeCamera":
        """Return the intrinsics of an image resized by ``factor``."""
        return PinholeCamera(
            self.fx * factor, self.fy * factor, self.cx * factor, self.cy * factor
        )

    def pixel_to_camera(self, point) -> np.ndarray:
        """Map pixel coordinates (shape ``(..., 2)``) to normalised image coordinates."""
        p = np.asarray(point, dtype=float)
        if p.ndim == 0 or p.shape[-1] != 2:
            raise ValueError(f"points must have a last dimension of 2, got {p.shape}")
        return np.stack(
            ((p[..., 0] - self.cx) / self.fx, (p[..., 1] - self.cy) / self.fy), axis=-1
        )


def _intrinsics(K) -> np.ndarray:
    arr = np.asarray(K, dtype=float)
    if arr.shape != (3, 3):
        raise ValueError(f"K must be 3x3, got {arr.shape}")
    return arr


def _skew(t) -> np.ndarray:
    x, y, z = t
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


def pixel_to_camera(point, K) -> np.ndarray:
    """Map pixel coordinates to normalised image coordinates using matrix ``K``."""
    k = _intrinsics(K)
    return PinholeCamera(k[0, 0], k[1, 1], k[0, 2], k[1, 2]).pixel_to_camera(point)


def essential_from_pose(R, t) -> np.ndarray:
    """Return the essential matrix ``t^ R``."""
    rot = np.asarray(R, dtype=float)
    if rot.shape != (3, 3):
        raise ValueError(f"R must be 3x3, got {rot.shape}")
    trans = np.asarray(t, dtype=float).reshape(-1)
    if trans.shape != (3,):
        raise ValueError(f"t must have 3 elements, got {trans.size}")
    return _skew(trans) @ rot


def epipolar_constraint(pt1, pt2, R, t, K):
    """Evaluate ``y2^T t^ R y1`` for pixel points of the first and second image."""
    y1 = pixel_to_camera(pt1, K)
    y2 = pixel_to_camera(pt2, K)
    if y1.shape != y2.shape:
        raise ValueError("pt1 and pt2 must have the same shape")
    ones = np.ones(y1.shape[:-1] + (1,))
    h1 = np.concatenate((y1, ones), axis=-1)
    h2 = np.concatenate((y2, ones), axis=-1)
    E = essential_from_pose(R, t)
    value = np.einsum("...i,ij,...j->...", h2, E, h1)
    return float(value) if np.ndim(value) == 0 else value