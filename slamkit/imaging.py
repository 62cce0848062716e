"""Grayscale image sampling, resizing and image pyramids."""

from __future__ import annotations

import numpy as np


def _gray(image, min_size: int) -> np.ndarray:
    arr = np.asarray(image)
    if arr.ndim != 2:
        raise ValueError(f"image must be a 2-D grayscale array, got shape {arr.shape}")
    rows, cols = arr.shape
    if rows < min_size or cols < min_size:
        raise ValueError(
            f"image must be at least {min_size}x{min_size}, got {rows}x{cols}"
        )
    return arr


def _result(value: np.ndarray):
    return float(value) if value.ndim == 0 else value


def _interpolate(img, x0, y0, x1, y1, xx, yy) -> np.ndarray:
    return (
        (1.0 - xx) * (1.0 - yy) * img[y0, x0]
        + xx * (1.0 - yy) * img[y0, x1]
        + (1.0 - xx) * yy * img[y1, x0]
        + xx * yy * img[y1, x1]
    )


def _sample(img: np.ndarray, x, y) -> np.ndarray:
    """Bilinear sample of a float image; coordinates are clamped inside the border."""
    rows, cols = img.shape
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    x = np.where(x < 0.0, 0.0, x)
    y = np.where(y < 0.0, 0.0, y)
    x = np.where(x >= cols - 1, cols - 2, x)
    y = np.where(y >= rows - 1, rows - 2, y)
    xi = np.floor(x).astype(int)
    yi = np.floor(y).astype(int)
    xa1 = np.minimum(cols - 1, xi + 1)
    ya1 = np.minimum(rows - 1, yi + 1)
    return _interpolate(img, xi, yi, xa1, ya1, x - xi, y - yi)


def _sample_edge(img: np.ndarray, x, y) -> np.ndarray:
    """Bilinear sample of a float image; coordinates are clamped to the last pixel."""
    rows, cols = img.shape
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    x = np.where(x < 0.0, 0.0, x)
    y = np.where(y < 0.0, 0.0, y)
    x = np.where(x >= cols, cols - 1, x)
    y = np.where(y >= rows, rows - 1, y)
    xi = np.floor(x).astype(int)
    yi = np.floor(y).astype(int)
    x1 = np.minimum(cols - 1, xi + 1)
    y1 = np.minimum(rows - 1, yi + 1)
    return _interpolate(img, xi, yi, x1, y1, x - xi, y - yi)


def sample_bilinear(image, x, y):
    """Bilinearly interpolate ``image`` at ``(x, y)``.

    Coordinates are clamped so that the 2x2 neighbourhood stays inside the
    image: ``x >= cols - 1`` is moved to ``cols - 2`` (likewise for ``y``).
    Scalars give a float; arrays give an array of the broadcast shape.
    """
    img = _gray(image, 2).astype(float, copy=False)
    return _result(_sample(img, x, y))


def sample_bilinear_edge(image, x, y):
    """Bilinearly interpolate ``image`` at ``(x, y)``, clamping to the last pixel.

    Coordinates beyond the image are moved to ``cols - 1`` / ``rows - 1``, and
    neighbours outside the image repeat the edge pixel.
    """
    img = _gray(image, 1).astype(float, copy=False)
    return _result(_sample_edge(img, x, y))


def _axis_weights(n_dst: int, n_src: int) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    scale = n_src / n_dst
    f = (np.arange(n_dst, dtype=float) + 0.5) * scale - 0.5
    i0 = np.floor(f).astype(int)
    w = f - i0
    below = i0 < 0
    i0[below] = 0
    w[below] = 0.0
    above = i0 >= n_src - 1
    i0[above] = n_src - 1
    w[above] = 0.0
    i1 = np.minimum(i0 + 1, n_src - 1)
    return i0, i1, w


def resize_bilinear(image, width: int, height: int) -> np.ndarray:
    """Resize ``image`` to ``height`` rows and ``width`` columns with bilinear filtering.

    Pixel centres are aligned as in the usual half-pixel convention; integer
    images are rounded and keep their dtype.
    """
    src = _gray(image, 1)
    if width < 1 or height < 1:
        raise ValueError(f"target size must be positive, got {width}x{height}")
    rows, cols = src.shape
    data = src.astype(float)
    y0, y1, wy = _axis_weights(height, rows)
    x0, x1, wx = _axis_weights(width, cols)
    vertical = data[y0, :] * (1.0 - wy)[:, None] + data[y1, :] * wy[:, None]
    out = vertical[:, x0] * (1.0 - wx)[None, :] + vertical[:, x1] * wx[None, :]
    if np.issubdtype(src.dtype, np.integer):
        info = np.iinfo(src.dtype)
        return np.clip(np.rint(out), info.min, info.max).astype(src.dtype)
    return out.astype(src.dtype, copy=False)


def build_pyramid(image, levels: int = 4, scale: float = 0.5) -> list[np.ndarray]:
    """Return ``levels`` images, the first being ``image``, each ``scale`` times the previous."""
    if levels < 1:
        raise ValueError(f"levels must be at least 1, got {levels}")
    if not 0.0 < scale:
        raise ValueError(f"scale must be positive, got {scale}")
    pyramid = [_gray(image, 1)]
    for _ in range(1, levels):
        prev = pyramid[-1]
        rows, cols = prev.shape
        width, height = int(cols * scale), int(rows * scale)
        if width < 1 or height < 1:
            raise ValueError("pyramid level would be empty; use fewer levels")
        pyramid.append(resize_bilinear(prev, width, height))
    return pyramid