# slamkit

Building blocks for visual odometry and bundle adjustment, written with
NumPy and SciPy. Images are plain 2-D NumPy arrays (grayscale), points are
arrays of shape `(N, 2)` or `(N, 3)`, and poses are `slamkit.lie.SE3` objects.

## Modules

- `slamkit.rotation`: `angle_axis_to_quaternion`, `quaternion_to_angle_axis`
  (quaternions are `[w, x, y, z]`) and `angle_axis_rotate_point`.
- `slamkit.lie`: `hat`, and the groups `SO3` (`exp`, `log`, `apply`, `@`) and
  `SE3` (`exp`, `apply`, `@`, `matrix`, `inverse`). `SE3` tangent vectors are
  ordered `[translation, rotation]`.
- `slamkit.camera`: `PinholeCamera` (defaults fx=520.9, fy=521.0, cx=325.1,
  cy=249.7; `matrix`, `scaled`, `pixel_to_camera`), plus `pixel_to_camera`,
  `essential_from_pose` and `epipolar_constraint` that take a 3x3 matrix `K`.
- `slamkit.features`: the `Match` dataclass and `filter_matches`, which keeps
  matches whose distance is at most twice the smallest distance, with a floor
  of 30.
- `slamkit.orb`: `compute_orb` builds 256-bit steered BRIEF descriptors (tuples
  of eight 32-bit words) for given `(x, y)` keypoints, returning `None` for
  keypoints within 16 pixels of the border; `hamming_distance`; and `bf_match`,
  a brute-force matcher keeping matches closer than `max_distance` (default 40).
- `slamkit.triangulation`: `triangulate_points` (DLT, homogeneous output),
  `triangulate` for pixel matches seen from `[I|0]` and `[R|t]`, and
  `depth_color` for plotting colours.
- `slamkit.pnp`: `points_from_depth` (depth images scaled by 5000),
  `projection_jacobian`, `bundle_adjustment_gauss_newton` and `optimize_pose`
  for 3D–2D pose estimation.
- `slamkit.icp`: `points_from_depth_pair`, `icp_svd` (closed-form alignment)
  and `icp_bundle_adjustment` (Levenberg–Marquardt refinement), both solving
  `p1 = R p2 + t`.
- `slamkit.imaging`: `sample_bilinear`, `sample_bilinear_edge`,
  `resize_bilinear` and `build_pyramid`.
- `slamkit.optical_flow`: `optical_flow_single_level` and
  `optical_flow_multi_level` (four levels, scale 0.5) Lucas–Kanade tracking,
  with an optional inverse-compositional form. Both return the tracked points
  and a per-point success flag.
- `slamkit.direct`: photometric pose estimation with `accumulate_jacobian`,
  `direct_pose_single_layer` and `direct_pose_multi_layer`. The default camera
  is `KITTI_CAMERA`.
- `slamkit.reprojection`: `project_with_distortion` and `reprojection_residual`
  for the 9-parameter camera (angle-axis, translation, focal length, two radial
  distortion coefficients).
- `slamkit.sampling`: `rand_double` and `rand_normal` (polar Box–Muller), each
  taking an optional `random.Random`.
- `slamkit.bal`: `median` and `BALProblem`, which reads (`from_file`), writes
  (`write`, `write_ply`), normalises (`normalize`) and perturbs (`perturb`)
  bundle adjustment problems, optionally holding rotations as quaternions.
- `slamkit.bundle_adjustment`: `solve_bundle_adjustment`, a sparse
  least-squares solver with a Huber loss that refines a `BALProblem` in place,
  and `main`, the command-line entry point.

## Installation

```
pip install .
```

Add the `test` extra to run the test suite:

```
pip install ".[test]"
pytest
```

## Examples

```python
import numpy as np
from slamkit.rotation import angle_axis_rotate_point

rotated = angle_axis_rotate_point(np.array([0.0, 0.0, np.pi / 2]), np.array([1.0, 0.0, 0.0]))
# approximately [0, 1, 0]
```

Aligning two point sets:

```python
import numpy as np
from slamkit.icp import icp_svd

R, t = icp_svd(points1, points2)   # points1 ≈ points2 @ R.T + t
```

Solving a BAL problem from Python:

```python
from slamkit.bal import BALProblem
from slamkit.bundle_adjustment import solve_bundle_adjustment

problem = BALProblem.from_file("problem.txt", False)
problem.normalize()
result = solve_bundle_adjustment(problem, 40)
print(result.cost)
problem.write_ply("final.ply")
```

`solve_bundle_adjustment` needs angle-axis cameras; a problem loaded with
`use_quaternions=True` is rejected.

## Command line

```
slamkit-ba problem.txt
```

This reads a BAL file, normalises it, perturbs it (rotation sigma 0.1,
translation sigma 0.5, point sigma 0.5), writes `initial.ply`, runs bundle
adjustment, prints the final cost and writes `final.ply` in the current
directory.

## What slamkit does not do

- It does not read, write, draw or display image files; images must be passed
  in as NumPy arrays.
- It does not detect keypoints: `compute_orb` and the trackers work on
  keypoint positions you supply.
- It does not estimate fundamental, essential or homography matrices from
  matches, recover a pose from an essential matrix, or solve PnP in closed
  form; pose estimation starts from 3D–2D or 3D–3D correspondences.