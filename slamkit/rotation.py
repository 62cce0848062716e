"""Angle-axis and quaternion rotation helpers."""

from __future__ import annotations

import math

import numpy as np

_EPS = float(np.finfo(float).eps)


def _vector(value, size: int, name: str) -> np.ndarray:
    arr = np.asarray(value, dtype=float)
    if arr.shape != (size,):
        raise ValueError(f"{name} must have shape ({size},), got {arr.shape}")
    return arr


def angle_axis_to_quaternion(angle_axis) -> np.ndarray:
    """Convert an angle-axis vector to a quaternion ``[w, x, y, z]``."""
    a = _vector(angle_axis, 3, "angle_axis")
    theta_squared = float(a @ a)
    if theta_squared > _EPS:
        theta = math.sqrt(theta_squared)
        half_theta = 0.5 * theta
        k = math.sin(half_theta) / theta
        w = math.cos(half_theta)
    else:
        k = 0.5
        w = 1.0
    return np.array([w, a[0] * k, a[1] * k, a[2] * k])


def quaternion_to_angle_axis(quaternion) -> np.ndarray:
    """Convert a quaternion ``[w, x, y, z]`` to an angle-axis vector."""
    q = _vector(quaternion, 4, "quaternion")
    vec = q[1:]
    sin_squared_theta = float(vec @ vec)
    if sin_squared_theta > _EPS:
        sin_theta = math.sqrt(sin_squared_theta)
        cos_theta = q[0]
        if cos_theta < 0.0:
            two_theta = 2.0 * math.atan2(-sin_theta, -cos_theta)
        else:
            two_theta = 2.0 * math.atan2(sin_theta, cos_theta)
        k = two_theta / sin_theta
    else:
        k = 2.0
    return vec * k


def angle_axis_rotate_point(angle_axis, point) -> np.ndarray:
    """Rotate ``point`` by the rotation given as an angle-axis vector."""
    a = _vector(angle_axis, 3, "angle_axis")
    p = _vector(point, 3, "point")
    theta2 = float(a @ a)
    if theta2 > _EPS:
        theta = math.sqrt(theta2)
        cos_theta = math.cos(theta)
        sin_theta = math.sin(theta)
        w = a / theta
        w_cross_pt = np.cross(w, p)
        tmp = float(w @ p) * (1.0 - cos_theta)
        return p * cos_theta + w_cross_pt * sin_theta + w * tmp
    # First-order approximation near zero rotation: R * p = p + w x p.
    return p + np.cross(a, p)