"""Rotation and rigid-body groups SO(3) and SE(3) with exponential maps."""

from __future__ import annotations

import math

import numpy as np
from scipy.spatial.transform import Rotation

_SMALL_ANGLE = 1e-10


def _vec(value, size: int, name: str) -> np.ndarray:
    arr = np.asarray(value, dtype=float)
    if arr.shape != (size,):
        raise ValueError(f"{name} must have shape ({size},), got {arr.shape}")
    return arr


def hat(v) -> np.ndarray:
    """Return the skew-symmetric matrix of a 3-vector, so that ``hat(v) @ w == v x w``."""
    x, y, z = _vec(v, 3, "v")
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


def _points(point) -> np.ndarray:
    arr = np.asarray(point, dtype=float)
    if arr.ndim == 0 or arr.shape[-1] != 3:
        raise ValueError(f"points must have a last dimension of 3, got {arr.shape}")
    return arr


class SO3:
    """A rotation in three dimensions, held as a 3x3 matrix ``R``."""

    __slots__ = ("R",)

    def __init__(self, matrix=None) -> None:
        if matrix is None:
            m = np.eye(3)
        else:
            m = np.array(matrix, dtype=float)
            if m.shape != (3, 3):
                raise ValueError(f"rotation matrix must be 3x3, got {m.shape}")
        m.setflags(write=False)
        self.R = m

    @classmethod
    def exp(cls, omega) -> "SO3":
        """Rotation of the rotation vector ``omega``."""
        w = _vec(omega, 3, "omega")
        return cls(Rotation.from_rotvec(w).as_matrix())

    def log(self) -> np.ndarray:
        """Rotation vector of this rotation."""
        return Rotation.from_matrix(self.R).as_rotvec()

    def apply(self, point) -> np.ndarray:
        """Rotate a point of shape ``(3,)`` or points of shape ``(N, 3)``."""
        return _points(point) @ self.R.T

    def __matmul__(self, other):
        if isinstance(other, SO3):
            return SO3(self.R @ other.R)
        return self.apply(other)

    def __repr__(self) -> str:
        return f"SO3({self.R.tolist()!r})"


class SE3:
    """A rigid-body transform ``p -> R p + t``.

    Tangent vectors are ordered ``[translation, rotation]``.
    """

    __slots__ = ("rotation", "translation")

    def __init__(self, rotation=None, translation=None) -> None:
        if rotation is None:
            rotation = SO3()
        elif not isinstance(rotation, SO3):
            rotation = SO3(rotation)
        t = np.zeros(3) if translation is None else np.array(
            _vec(np.asarray(translation, dtype=float).reshape(-1), 3, "translation")
        )
        t.setflags(write=False)
        self.rotation = rotation
        self.translation = t

    @classmethod
    def exp(cls, xi) -> "SE3":
        """Transform of the twist ``xi = [rho, omega]``."""
        v = _vec(xi, 6, "xi")
        rho, omega = v[:3], v[3:]
        theta = math.sqrt(float(omega @ omega))
        W = hat(omega)
        if theta < _SMALL_ANGLE:
            V = np.eye(3) + 0.5 * W
        else:
            V = (
                np.eye(3)
                + (1.0 - math.cos(theta)) / theta**2 * W
                + (theta - math.sin(theta)) / theta**3 * (W @ W)
            )
        return cls(SO3.exp(omega), V @ rho)

    def apply(self, point) -> np.ndarray:
        """Transform a point of shape ``(3,)`` or points of shape ``(N, 3)``."""
        return self.rotation.apply(point) + self.translation

    def __matmul__(self, other):
        if isinstance(other, SE3):
            return SE3(
                self.rotation @ other.rotation,
                self.rotation.apply(other.translation) + self.translation,
            )
        return self.apply(other)

    def matrix(self) -> np.ndarray:
        """Return the 4x4 homogeneous matrix."""
        m = np.eye(4)
        m[:3, :3] = self.rotation.R
        m[:3, 3] = self.translation
        return m

    def inverse(self) -> "SE3":
        """Return the inverse transform."""
        r_inv = SO3(self.rotation.R.T)
        return SE3(r_inv, -r_inv.apply(self.translation))

    def __repr__(self) -> str:
        return f"SE3({self.matrix().tolist()!r})"