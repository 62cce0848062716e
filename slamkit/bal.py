"""Bundle adjustment in the large (BAL) problems: loading, saving, normalising."""

from __future__ import annotations

import random
from dataclasses import dataclass
from os import PathLike
from typing import Callable, Optional, Union

import numpy as np

from slamkit.rotation import (
    angle_axis_rotate_point,
    angle_axis_to_quaternion,
    quaternion_to_angle_axis,
)
from slamkit.sampling import rand_normal

POINT_BLOCK_SIZE = 3
TARGET_DEVIATION = 100.0

PathType = Union[str, "PathLike[str]"]


def median(values) -> float:
    """Return the element at position ``n // 2`` of the sorted values."""
    arr = np.asarray(values, dtype=float).reshape(-1)
    if arr.size == 0:
        raise ValueError("median of an empty sequence")
    return float(np.partition(arr, arr.size // 2)[arr.size // 2])


def _token_reader(tokens: list[str]) -> Callable:
    it = iter(tokens)

    def take(kind, what: str):
        try:
            token = next(it)
        except StopIteration:
            raise ValueError(f"invalid BAL data file: missing {what}") from None
        try:
            return kind(token)
        except ValueError:
            raise ValueError(f"invalid BAL data file: bad {what} {token!r}") from None

    return take


def _normal3(rng: Optional[random.Random]) -> np.ndarray:
    return np.array([rand_normal(rng) for _ in range(3)])


@dataclass(eq=False)
class BALProblem:
    """Cameras, points and observations of a bundle adjustment problem.

    ``parameters`` holds all camera blocks followed by all points. A camera
    block is the rotation (angle-axis, or a quaternion ``[w, x, y, z]`` when
    ``use_quaternions`` is set), the translation, the focal length and two
    radial distortion coefficients.
    """

    num_cameras: int
    num_points: int
    camera_index: np.ndarray
    point_index: np.ndarray
    observations: np.ndarray
    parameters: np.ndarray
    use_quaternions: bool = False

    def __post_init__(self) -> None:
        if self.num_cameras < 0 or self.num_points < 0:
            raise ValueError("camera and point counts must not be negative")
        self.camera_index = np.asarray(self.camera_index, dtype=int).reshape(-1)
        self.point_index = np.asarray(self.point_index, dtype=int).reshape(-1)
        self.observations = np.asarray(self.observations, dtype=float).reshape(-1, 2)
        self.parameters = np.array(self.parameters, dtype=float).reshape(-1)
        n = len(self.observations)
        if len(self.camera_index) != n or len(self.point_index) != n:
            raise ValueError("index arrays must match the number of observations")
        expected = self.camera_block_size * self.num_cameras + POINT_BLOCK_SIZE * self.num_points
        if self.parameters.size != expected:
            raise ValueError(
                f"expected {expected} parameters, got {self.parameters.size}"
            )
        if n and (
            self.camera_index.min() < 0
            or self.camera_index.max() >= self.num_cameras
            or self.point_index.min() < 0
            or self.point_index.max() >= self.num_points
        ):
            raise ValueError("observation refers to a missing camera or point")

    @property
    def camera_block_size(self) -> int:
        return 10 if self.use_quaternions else 9

    @property
    def point_block_size(self) -> int:
        return POINT_BLOCK_SIZE

    @property
    def num_observations(self) -> int:
        return len(self.observations)

    @property
    def num_parameters(self) -> int:
        return self.parameters.size

    @property
    def cameras(self) -> np.ndarray:
        """Writable view of the camera blocks, shape ``(num_cameras, block)``."""
        end = self.camera_block_size * self.num_cameras
        return self.parameters[:end].reshape(self.num_cameras, self.camera_block_size)

    @property
    def points(self) -> np.ndarray:
        """Writable view of the points, shape ``(num_points, 3)``."""
        start = self.camera_block_size * self.num_cameras
        return self.parameters[start:].reshape(self.num_points, POINT_BLOCK_SIZE)

    @classmethod
    def from_file(cls, path: PathType, use_quaternions: bool = False) -> "BALProblem":
        """Load a problem from a BAL text file."""
        with open(path, "r", encoding="ascii") as fh:
            take = _token_reader(fh.read().split())
        num_cameras = take(int, "camera count")
        num_points = take(int, "point count")
        num_observations = take(int, "observation count")
        if min(num_cameras, num_points, num_observations) < 0:
            raise ValueError("invalid BAL data file: negative count")
        camera_index, point_index, observations = [], [], []
        for _ in range(num_observations):
            camera_index.append(take(int, "camera index"))
            point_index.append(take(int, "point index"))
            observations.append((take(float, "observation"), take(float, "observation")))
        num_parameters = 9 * num_cameras + POINT_BLOCK_SIZE * num_points
        parameters = np.array([take(float, "parameter") for _ in range(num_parameters)])

        if use_quaternions:
            cams = parameters[: 9 * num_cameras].reshape(num_cameras, 9)
            converted = [
                np.concatenate((angle_axis_to_quaternion(cam[:3]), cam[3:])) for cam in cams
            ]
            parameters = np.concatenate(
                [*converted, parameters[9 * num_cameras :]]
            ) if converted else parameters

        return cls(
            num_cameras,
            num_points,
            np.array(camera_index, dtype=int),
            np.array(point_index, dtype=int),
            np.array(observations, dtype=float).reshape(-1, 2),
            parameters,
            use_quaternions,
        )

    def write(self, path: PathType) -> None:
        """Save the problem as a BAL text file with angle-axis rotations."""
        with open(path, "w", encoding="ascii") as fh:
            fh.write(f"{self.num_cameras} {self.num_points} {self.num_observations}\n")
            for cam_idx, pt_idx, (u, v) in zip(
                self.camera_index, self.point_index, self.observations
            ):
                fh.write("%d %d %g %g\n" % (cam_idx, pt_idx, u, v))
            for cam in self.cameras:
                if self.use_quaternions:
                    values = np.concatenate((quaternion_to_angle_axis(cam[:4]), cam[4:]))
                else:
                    values = cam
                fh.writelines("%.16g\n" % value for value in values)
            for point in self.points:
                fh.writelines("%.16g\n" % value for value in point)

    def write_ply(self, path: PathType) -> None:
        """Save camera centres (green) and points (white) as an ASCII PLY cloud."""
        header = (
            "ply",
            "format ascii 1.0",
            f"element vertex {self.num_cameras + self.num_points}",
            "property float x",
            "property float y",
            "property float z",
            "property uchar red",
            "property uchar green",
            "property uchar blue",
            "end_header",
        )
        with open(path, "w", encoding="ascii") as fh:
            fh.write("\n".join(header) + "\n")
            for cam in self.cameras:
                _, center = self.camera_to_angle_axis_and_center(cam)
                fh.write(" ".join(f"{c:g}" for c in center) + " 0 255 0\n")
            for point in self.points:
                fh.write("".join(f"{c:g} " for c in point) + " 255 255 255\n")

    def _camera(self, camera) -> np.ndarray:
        cam = np.asarray(camera, dtype=float)
        if cam.shape != (self.camera_block_size,):
            raise ValueError(
                f"camera must have shape ({self.camera_block_size},), got {cam.shape}"
            )
        return cam

    def camera_to_angle_axis_and_center(self, camera) -> tuple[np.ndarray, np.ndarray]:
        """Return the angle-axis rotation and the centre ``c = -R^T t`` of a camera."""
        cam = self._camera(camera)
        block = self.camera_block_size
        if self.use_quaternions:
            angle_axis = quaternion_to_angle_axis(cam[:4])
        else:
            angle_axis = cam[:3].copy()
        translation = cam[block - 6 : block - 3]
        center = -angle_axis_rotate_point(-angle_axis, translation)
        return angle_axis, center

    def angle_axis_and_center_to_camera(self, angle_axis, center) -> np.ndarray:
        """Return the rotation and translation ``t = -R c`` of a camera block.

        The result is the first ``camera_block_size - 3`` entries of a camera;
        the intrinsics that follow are left to the caller.
        """
        aa = np.asarray(angle_axis, dtype=float)
        if aa.shape != (3,):
            raise ValueError(f"angle_axis must have shape (3,), got {aa.shape}")
        rotation = angle_axis_to_quaternion(aa) if self.use_quaternions else aa
        translation = -angle_axis_rotate_point(aa, center)
        return np.concatenate((rotation, translation))

    def normalize(self) -> None:
        """Centre the points on their median and scale them to a deviation of 100."""
        points = self.points
        med = np.array([median(points[:, i]) for i in range(POINT_BLOCK_SIZE)])
        deviation = median(np.abs(points - med).sum(axis=1))
        if deviation == 0.0:
            raise ValueError("points have a zero median absolute deviation")
        scale = TARGET_DEVIATION / deviation
        points[:] = scale * (points - med)

        extrinsic = self.camera_block_size - 3
        for cam in self.cameras:
            angle_axis, center = self.camera_to_angle_axis_and_center(cam)
            cam[:extrinsic] = self.angle_axis_and_center_to_camera(
                angle_axis, scale * (center - med)
            )

    def perturb(
        self,
        rotation_sigma: float,
        translation_sigma: float,
        point_sigma: float,
        rng: Optional[random.Random] = None,
    ) -> None:
        """Add Gaussian noise to points, camera rotations and camera translations."""
        for name, sigma in (
            ("rotation_sigma", rotation_sigma),
            ("translation_sigma", translation_sigma),
            ("point_sigma", point_sigma),
        ):
            if sigma < 0.0:
                raise ValueError(f"{name} must not be negative, got {sigma}")

        if point_sigma > 0:
            for point in self.points:
                point += _normal3(rng) * point_sigma

        block = self.camera_block_size
        for cam in self.cameras:
            angle_axis, center = self.camera_to_angle_axis_and_center(cam)
            if rotation_sigma > 0.0:
                angle_axis = angle_axis + _normal3(rng) * rotation_sigma
            cam[: block - 3] = self.angle_axis_and_center_to_camera(angle_axis, center)
            if translation_sigma > 0.0:
                cam[block - 6 : block - 3] += _normal3(rng) * translation_sigma