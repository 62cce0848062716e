"""Hand-written ORB descriptors and brute-force Hamming matching."""

from __future__ import annotations

import math
from typing import Iterable, Optional, Sequence

import numpy as np

from slamkit.features import Match

HALF_PATCH_SIZE = 8
HALF_BOUNDARY = 16
DESCRIPTOR_WORDS = 8
BITS_PER_WORD = 32
DEFAULT_MAX_DISTANCE = 40

Descriptor = tuple[int, ...]

# Point pairs (p.x, p.y, q.x, q.y) of the 256-bit ORB test pattern.
_ORB_PATTERN = (
    (8, -3, 9, 5), (4, 2, 7, -12), (-11, 9, -8, 2), (7, -12, 12, -13),
    (2, -13, 2, 12), (1, -7, 1, 6), (-2, -10, -2, -4), (-13, -13, -11, -8),
    (-13, -3, -12, -9), (10, 4, 11, 9), (-13, -8, -8, -9), (-11, 7, -9, 12),
    (7, 7, 12, 6), (-4, -5, -3, 0), (-13, 2, -12, -3), (-9, 0, -7, 5),
    (12, -6, 12, -1), (-3, 6, -2, 12), (-6, -13, -4, -8), (11, -13, 12, -8),
    (4, 7, 5, 1), (5, -3, 10, -3), (3, -7, 6, 12), (-8, -7, -6, -2),
    (-2, 11, -1, -10), (-13, 12, -8, 10), (-7, 3, -5, -3), (-4, 2, -3, 7),
    (-10, -12, -6, 11), (5, -12, 6, -7), (5, -6, 7, -1), (1, 0, 4, -5),
    (9, 11, 11, -13), (4, 7, 4, 12), (2, -1, 4, 4), (-4, -12, -2, 7),
    (-8, -5, -7, -10), (4, 11, 9, 12), (0, -8, 1, -13), (-13, -2, -8, 2),
    (-3, -2, -2, 3), (-6, 9, -4, -9), (8, 12, 10, 7), (0, 9, 1, 3),
    (7, -5, 11, -10), (-13, -6, -11, 0), (10, 7, 12, 1), (-6, -3, -6, 12),
    (10, -9, 12, -4), (-13, 8, -8, -12), (-13, 0, -8, -4), (3, 3, 7, 8),
    (5, 7, 10, -7), (-1, 7, 1, -12), (3, -10, 5, 6), (2, -4, 3, -10),
    (-13, 0, -13, 5), (-13, -7, -12, 12), (-13, 3, -11, 8), (-7, 12, -4, 7),
    (6, -10, 12, 8), (-9, -1, -7, -6), (-2, -5, 0, 12), (-12, 5, -7, 5),
    (3, -10, 8, -13), (-7, -7, -4, 5), (-3, -2, -1, -7), (2, 9, 5, -11),
    (-11, -13, -5, -13), (-1, 6, 0, -1), (5, -3, 5, 2), (-4, -13, -4, 12),
    (-9, -6, -9, 6), (-12, -10, -8, -4), (10, 2, 12, -3), (7, 12, 12, 12),
    (-7, -13, -6, 5), (-4, 9, -3, 4), (7, -1, 12, 2), (-7, 6, -5, 1),
    (-13, 11, -12, 5), (-3, 7, -2, -6), (7, -8, 12, -7), (-13, -7, -11, -12),
    (1, -3, 12, 12), (2, -6, 3, 0), (-4, 3, -2, -13), (-1, -13, 1, 9),
    (7, 1, 8, -6), (1, -1, 3, 12), (9, 1, 12, 6), (-1, -9, -1, 3),
    (-13, -13, -10, 5), (7, 7, 10, 12), (12, -5, 12, 9), (6, 3, 7, 11),
    (5, -13, 6, 10), (2, -12, 2, 3), (3, 8, 4, -6), (2, 6, 12, -13),
    (9, -12, 10, 3), (-8, 4, -7, 9), (-11, 12, -4, -6), (1, 12, 2, -8),
    (6, -9, 7, -4), (2, 3, 3, -2), (6, 3, 11, 0), (3, -3, 8, -8),
    (7, 8, 9, 3), (-11, -5, -6, -4), (-10, 11, -5, 10), (-5, -8, -3, 12),
    (-10, 5, -9, 0), (8, -1, 12, -6), (4, -6, 6, -11), (-10, 12, -8, 7),
    (4, -2, 6, 7), (-2, 0, -2, 12), (-5, -8, -5, 2), (7, -6, 10, 12),
    (-9, -13, -8, -8), (-5, -13, -5, -2), (8, -8, 9, -13), (-9, -11, -9, 0),
    (1, -8, 1, -2), (7, -4, 9, 1), (-2, 1, -1, -4), (11, -6, 12, -11),
    (-12, -9, -6, 4), (3, 7, 7, 12), (5, 5, 10, 8), (0, -4, 2, 8),
    (-9, 12, -5, -13), (0, 7, 2, 12), (-1, 2, 1, 7), (5, 11, 7, -9),
    (3, 5, 6, -8), (-13, -4, -8, 9), (-5, 9, -3, -3), (-4, -7, -3, -12),
    (6, 5, 8, 0), (-7, 6, -6, 12), (-13, 6, -5, -2), (1, -10, 3, 10),
    (4, 1, 8, -4), (-2, -2, 2, -13), (2, -12, 12, 12), (-2, -13, 0, -6),
    (4, 1, 9, 3), (-6, -10, -3, -5), (-3, -13, -1, 1), (7, 5, 12, -11),
    (4, -2, 5, -7), (-13, 9, -9, -5), (7, 1, 8, 6), (7, -8, 7, 6),
    (-7, -4, -7, 1), (-8, 11, -7, -8), (-13, 6, -12, -8), (2, 4, 3, 9),
    (10, -5, 12, 3), (-6, -5, -6, 7), (8, -3, 9, -8), (2, -12, 2, 8),
    (-11, -2, -10, 3), (-12, -13, -7, -9), (-11, 0, -10, -5), (5, -3, 11, 8),
    (-2, -13, -1, 12), (-1, -8, 0, 9), (-13, -11, -12, -5), (-10, -2, -10, 11),
    (-3, 9, -2, -13), (2, -3, 3, 2), (-9, -13, -4, 0), (-4, 6, -3, -10),
    (-4, 12, -2, -7), (-6, -11, -4, 9), (6, -3, 6, 11), (-13, 11, -5, 5),
    (11, 11, 12, 6), (7, -5, 12, -2), (-1, 12, 0, 7), (-4, -8, -3, -2),
    (-7, 1, -6, 7), (-13, -12, -8, -13), (-7, -2, -6, -8), (-8, 5, -6, -9),
    (-5, -1, -4, 5), (-13, 7, -8, 10), (1, 5, 5, -13), (1, 0, 10, -13),
    (9, 12, 10, -1), (5, -8, 10, -9), (-1, 11, 1, -13), (-9, -3, -6, 2),
    (-1, -10, 1, 12), (-13, 1, -8, -10), (8, -11, 10, -6), (2, -13, 3, -6),
    (7, -13, 12, -9), (-10, -10, -5, -7), (-10, -8, -8, -13), (4, -6, 8, 5),
    (3, 12, 8, -13), (-4, 2, -3, -3), (5, -13, 10, -12), (4, -13, 5, -1),
    (-9, 9, -4, 3), (0, 3, 3, -9), (-12, 1, -6, 1), (3, 2, 4, -8),
    (-10, -10, -10, 9), (8, -13, 12, 12), (-8, -12, -6, -5), (2, 2, 3, 7),
    (10, 6, 11, -8), (6, 8, 8, -12), (-7, 10, -6, 5), (-3, -9, -3, 9),
    (-1, -13, -1, 5), (-3, -7, -3, 4), (-8, -2, -8, 3), (4, 2, 12, 12),
    (2, -5, 3, 11), (6, -9, 11, -13), (3, -1, 7, 12), (11, -1, 12, 4),
    (-3, 0, -3, 6), (4, -11, 4, 12), (2, -4, 2, 1), (-10, -6, -8, 1),
    (-13, 7, -11, 1), (-13, 12, -11, -13), (6, 0, 11, -13), (0, -1, 1, 4),
    (-13, 3, -9, -2), (-9, 8, -6, -3), (-13, -6, -8, -2), (5, -9, 8, 10),
    (2, 7, 3, -9), (-1, -6, -1, -1), (9, 5, 11, -2), (11, -3, 12, -8),
    (3, 0, 3, 5), (-1, 4, 0, 10), (3, -6, 4, 5), (-13, 0, -10, 5),
    (5, 8, 12, 11), (8, 9, 9, -6), (7, -4, 8, -12), (-10, 4, -10, 9),
    (7, 3, 12, 4), (9, -7, 10, -2), (7, 0, 12, -2), (-1, -6, 0, -11),
)

_PATTERN = np.array(_ORB_PATTERN, dtype=np.float32).reshape(
    DESCRIPTOR_WORDS * BITS_PER_WORD, 4
)
_BIT_WEIGHTS = np.left_shift(np.uint64(1), np.arange(BITS_PER_WORD, dtype=np.uint64))

_PATCH_OFFSETS = np.arange(-HALF_PATCH_SIZE, HALF_PATCH_SIZE, dtype=float)


def _image(image) -> np.ndarray:
    arr = np.asarray(image)
    if arr.ndim != 2:
        raise ValueError(f"image must be a 2-D grayscale array, got shape {arr.shape}")
    return arr


def _descriptor_at(img: np.ndarray, x: float, y: float) -> Descriptor:
    rows, cols = img.shape
    xi, yi = int(x), int(y)
    patch = img[
        yi - HALF_PATCH_SIZE : yi + HALF_PATCH_SIZE,
        xi - HALF_PATCH_SIZE : xi + HALF_PATCH_SIZE,
    ].astype(float)
    m10 = float((patch * _PATCH_OFFSETS[None, :]).sum())
    m01 = float((patch * _PATCH_OFFSETS[:, None]).sum())

    m_sqrt = np.float32(math.sqrt(m01 * m01 + m10 * m10) + 1e-18)
    sin_theta = np.float32(m01) / m_sqrt
    cos_theta = np.float32(m10) / m_sqrt
    kx, ky = np.float32(x), np.float32(y)

    px, py, qx, qy = _PATTERN.T
    ppx = cos_theta * px - sin_theta * py + kx
    ppy = sin_theta * px + cos_theta * py + ky
    qqx = cos_theta * qx - sin_theta * qy + kx
    qqy = sin_theta * qx + cos_theta * qy + ky

    def sample(sx: np.ndarray, sy: np.ndarray) -> np.ndarray:
        cols_idx = np.clip(np.trunc(sx).astype(int), 0, cols - 1)
        rows_idx = np.clip(np.trunc(sy).astype(int), 0, rows - 1)
        return img[rows_idx, cols_idx]

    bits = (sample(ppx, ppy) < sample(qqx, qqy)).reshape(DESCRIPTOR_WORDS, BITS_PER_WORD)
    words = (bits.astype(np.uint64) * _BIT_WEIGHTS).sum(axis=1)
    return tuple(int(w) for w in words)


def compute_orb(image, keypoints: Iterable[Sequence[float]]) -> list[Optional[Descriptor]]:
    """Compute a 256-bit steered BRIEF descriptor for each ``(x, y)`` keypoint.

    Each descriptor is a tuple of eight 32-bit words. Keypoints closer than
    16 pixels to the image border get ``None`` instead.
    """
    img = _image(image)
    rows, cols = img.shape
    descriptors: list[Optional[Descriptor]] = []
    for kp in keypoints:
        x, y = (float(v) for v in kp)
        if (
            x < HALF_BOUNDARY
            or y < HALF_BOUNDARY
            or x >= cols - HALF_BOUNDARY
            or y >= rows - HALF_BOUNDARY
        ):
            descriptors.append(None)
            continue
        descriptors.append(_descriptor_at(img, x, y))
    return descriptors


def hamming_distance(desc1: Sequence[int], desc2: Sequence[int]) -> int:
    """Number of differing bits between two descriptors of the same length."""
    if len(desc1) != len(desc2):
        raise ValueError(
            f"descriptors differ in length: {len(desc1)} and {len(desc2)}"
        )
    return sum((int(a) ^ int(b)).bit_count() for a, b in zip(desc1, desc2))


def bf_match(
    descriptors1: Sequence[Optional[Sequence[int]]],
    descriptors2: Sequence[Optional[Sequence[int]]],
    max_distance: int = DEFAULT_MAX_DISTANCE,
) -> list[Match]:
    """Brute-force match each descriptor of the first set to its nearest in the second.

    Missing descriptors are skipped; only matches closer than ``max_distance``
    are kept. On ties the lowest index in the second set wins.
    """
    candidates = [(i2, d) for i2, d in enumerate(descriptors2) if d]
    matches: list[Match] = []
    for i1, d1 in enumerate(descriptors1):
        if not d1:
            continue
        best_idx, best_dist = 0, DESCRIPTOR_WORDS * BITS_PER_WORD
        for i2, d2 in candidates:
            distance = hamming_distance(d1, d2)
            if distance < max_distance and distance < best_dist:
                best_idx, best_dist = i2, distance
        if best_dist < max_distance:
            matches.append(Match(i1, best_idx, float(best_dist)))
    return matches