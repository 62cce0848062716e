"""Bundle adjustment of BAL problems with a robust (Huber) least-squares solver."""

from __future__ import annotations

import sys
from typing import Optional, Sequence

import numpy as np
from scipy.optimize import OptimizeResult, least_squares
from scipy.sparse import lil_matrix

from slamkit.bal import BALProblem

CAMERA_SIZE = 9
HUBER_DELTA = 1.0
DEFAULT_MAX_ITERATIONS = 50
_EPS = float(np.finfo(float).eps)


def _rotate(angle_axis: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Rotate each point by its own angle-axis vector (rows of both arrays)."""
    theta2 = np.einsum("ij,ij->i", angle_axis, angle_axis)
    big = theta2 > _EPS
    theta = np.sqrt(np.where(big, theta2, 1.0))
    cos_t = np.cos(theta)[:, None]
    sin_t = np.sin(theta)[:, None]
    w = angle_axis / theta[:, None]
    w_dot_p = np.einsum("ij,ij->i", w, points)[:, None]
    rotated = points * cos_t + np.cross(w, points) * sin_t + w * w_dot_p * (1.0 - cos_t)
    small = points + np.cross(angle_axis, points)
    return np.where(big[:, None], rotated, small)


def _residuals(
    params: np.ndarray,
    num_cameras: int,
    num_points: int,
    camera_index: np.ndarray,
    point_index: np.ndarray,
    observations: np.ndarray,
) -> np.ndarray:
    cameras = params[: CAMERA_SIZE * num_cameras].reshape(num_cameras, CAMERA_SIZE)
    points = params[CAMERA_SIZE * num_cameras :].reshape(num_points, 3)
    cams = cameras[camera_index]
    pts = points[point_index]
    p = _rotate(cams[:, :3], pts) + cams[:, 3:6]
    xp = -p[:, 0] / p[:, 2]
    yp = -p[:, 1] / p[:, 2]
    r2 = xp * xp + yp * yp
    distortion = 1.0 + r2 * (cams[:, 7] + cams[:, 8] * r2)
    focal = cams[:, 6]
    predicted = np.stack((focal * distortion * xp, focal * distortion * yp), axis=-1)
    return (predicted - observations).ravel()


def _sparsity(problem: BALProblem) -> lil_matrix:
    n_obs = problem.num_observations
    n_params = CAMERA_SIZE * problem.num_cameras + 3 * problem.num_points
    pattern = lil_matrix((2 * n_obs, n_params), dtype=int)
    point_offset = CAMERA_SIZE * problem.num_cameras
    for i, (ci, pi) in enumerate(zip(problem.camera_index, problem.point_index)):
        rows = slice(2 * i, 2 * i + 2)
        pattern[rows, CAMERA_SIZE * ci : CAMERA_SIZE * (ci + 1)] = 1
        pattern[rows, point_offset + 3 * pi : point_offset + 3 * (pi + 1)] = 1
    return pattern


def solve_bundle_adjustment(
    problem: BALProblem, max_iterations: int = DEFAULT_MAX_ITERATIONS
) -> OptimizeResult:
    """Jointly refine all cameras and points of ``problem`` in place.

    Minimises the reprojection error of every observation under a Huber loss
    of scale 1. Returns the solver result, whose ``cost`` is the final cost.
    """
    if problem.use_quaternions:
        raise ValueError("bundle adjustment needs angle-axis camera parameters")
    if problem.num_observations == 0:
        raise ValueError("the problem has no observations")
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")

    args = (
        problem.num_cameras,
        problem.num_points,
        problem.camera_index,
        problem.point_index,
        problem.observations,
    )
    result = least_squares(
        _residuals,
        problem.parameters.copy(),
        jac_sparsity=_sparsity(problem),
        method="trf",
        loss="huber",
        f_scale=HUBER_DELTA,
        x_scale="jac",
        max_nfev=max_iterations,
        args=args,
    )
    problem.parameters[:] = result.x
    return result


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Load a BAL file, normalise and perturb it, solve it and write PLY snapshots."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) != 1:
        print("usage: bundle_adjustment bal_data.txt", file=sys.stderr)
        return 1

    problem = BALProblem.from_file(args[0])
    problem.normalize()
    problem.perturb(0.1, 0.5, 0.5)
    problem.write_ply("initial.ply")

    print("bal problem file loaded...")
    print(
        f"bal problem have {problem.num_cameras} cameras and "
        f"{problem.num_points} points. "
    )
    print(f"Forming {problem.num_observations} observations. ")
    print("Solving BA ... ")
    result = solve_bundle_adjustment(problem)
    initial_cost = 0.5 * float(np.sum(np.abs(result.fun))) if result.fun.size else 0.0
    print(f"final cost: {result.cost:g} ({result.message})")
    del initial_cost

    problem.write_ply("final.ply")
    return 0