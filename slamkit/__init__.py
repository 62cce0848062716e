"""Visual odometry and bundle adjustment building blocks: rotations, Lie groups,
ORB descriptors, pose estimation, optical flow, direct method and BAL problems."""

__version__ = "0.1.0"