import numpy as np
import pytest

from slamkit.bal import BALProblem
from slamkit.bundle_adjustment import main, solve_bundle_adjustment
from slamkit.reprojection import project_with_distortion, reprojection_residual


def _synthetic(seed=0, point_noise=0.0, use_quaternions=False):
    rng = np.random.default_rng(seed)
    num_cameras, num_points = 3, 10
    cameras = np.zeros((num_cameras, 9))
    cameras[:, :3] = rng.normal(scale=0.05, size=(num_cameras, 3))
    cameras[:, 3:6] = rng.normal(scale=0.2, size=(num_cameras, 3))
    cameras[:, 6] = 500.0
    points = np.column_stack(
        (
            rng.uniform(-2.0, 2.0, num_points),
            rng.uniform(-2.0, 2.0, num_points),
            rng.uniform(-10.0, -5.0, num_points),
        )
    )
    camera_index, point_index, observations = [], [], []
    for ci in range(num_cameras):
        for pi in range(num_points):
            camera_index.append(ci)
            point_index.append(pi)
            observations.append(project_with_distortion(cameras[ci], points[pi]))
    noisy = points + rng.normal(scale=point_noise, size=points.shape)
    params = np.concatenate((cameras.ravel(), noisy.ravel()))
    problem = BALProblem(
        num_cameras,
        num_points,
        np.array(camera_index),
        np.array(point_index),
        np.array(observations),
        params,
    )
    return problem


def _max_residual(problem):
    return max(
        float(np.max(np.abs(reprojection_residual(problem.cameras[ci], problem.points[pi], obs))))
        for ci, pi, obs in zip(problem.camera_index, problem.point_index, problem.observations)
    )


def test_exact_problem_stays_at_zero_residual():
    problem = _synthetic()
    before = problem.parameters.copy()
    result = solve_bundle_adjustment(problem)
    assert result.cost == pytest.approx(0.0, abs=1e-12)
    np.testing.assert_allclose(problem.parameters, before, atol=1e-8)


def test_perturbed_points_are_recovered():
    problem = _synthetic(point_noise=0.05)
    initial = _max_residual(problem)
    result = solve_bundle_adjustment(problem)
    final = _max_residual(problem)
    assert initial > 0.5
    assert final < 1e-2
    assert result.cost < 1e-3


def test_problem_parameters_are_updated_in_place():
    problem = _synthetic(point_noise=0.05)
    before = problem.points.copy()
    result = solve_bundle_adjustment(problem)
    np.testing.assert_allclose(problem.parameters, result.x)
    assert not np.allclose(problem.points, before)


def test_quaternion_problem_is_rejected():
    problem = _synthetic()
    cams = problem.cameras
    from slamkit.rotation import angle_axis_to_quaternion

    quat_params = np.concatenate(
        [np.concatenate((angle_axis_to_quaternion(c[:3]), c[3:])) for c in cams]
        + [problem.points.ravel()]
    )
    quat_problem = BALProblem(
        problem.num_cameras,
        problem.num_points,
        problem.camera_index,
        problem.point_index,
        problem.observations,
        quat_params,
        use_quaternions=True,
    )
    with pytest.raises(ValueError):
        solve_bundle_adjustment(quat_problem)


def test_problem_without_observations_is_rejected():
    problem = BALProblem(1, 1, [], [], np.zeros((0, 2)), np.zeros(12))
    with pytest.raises(ValueError):
        solve_bundle_adjustment(problem)


def test_non_positive_iteration_count_is_rejected():
    with pytest.raises(ValueError):
        solve_bundle_adjustment(_synthetic(), max_iterations=0)


def test_main_without_file_prints_usage(capsys):
    assert main([]) == 1
    assert "usage" in capsys.readouterr().err


def test_main_writes_ply_files(tmp_path, monkeypatch):
    data = tmp_path / "problem.txt"
    _synthetic().write(data)
    monkeypatch.chdir(tmp_path)
    assert main([str(data)]) == 0
    for name in ("initial.ply", "final.ply"):
        lines = (tmp_path / name).read_text().splitlines()
        assert lines[0] == "ply"
        assert lines[2] == "element vertex 13"
        end = lines.index("end_header")
        body = lines[end + 1 :]
        assert len(body) == 13
        assert sum(line.endswith("0 255 0") for line in body[:3]) == 3
        assert all(line.endswith("255 255 255") for line in body[3:])