"""Reprojection of points through a camera with radial distortion (BAL model)."""

from __future__ import annotations

import numpy as np

from slamkit.rotation import angle_axis_rotate_point

CAMERA_SIZE = 9


def _vector(value, size: int, name: str) -> np.ndarray:
    arr = np.asarray(value, dtype=float)
    if arr.shape != (size,):
        raise ValueError(f"{name} must have shape ({size},), got {arr.shape}")
    return arr


def project_with_distortion(camera, point) -> np.ndarray:
    """Project a 3D point with a 9-parameter camera.

    The camera holds an angle-axis rotation, a translation, the focal length
    and the second and fourth order radial distortion coefficients. The
    result is centred on the image plane.
    """
    c = _vector(camera, CAMERA_SIZE, "camera")
    p = angle_axis_rotate_point(c[:3], point) + c[3:6]
    xp = -p[0] / p[2]
    yp = -p[1] / p[2]
    l1, l2 = c[7], c[8]
    r2 = xp * xp + yp * yp
    distortion = 1.0 + r2 * (l1 + l2 * r2)
    focal = c[6]
    return np.array([focal * distortion * xp, focal * distortion * yp])


def reprojection_residual(camera, point, observed) -> np.ndarray:
    """Predicted minus observed image position of ``point``."""
    obs = _vector(observed, 2, "observed")
    return project_with_distortion(camera, point) - obs