"""
Sauvola adaptive binarization for OCR pre-processing.

Each pixel is compared against a threshold derived from the mean and
population standard deviation of the square window centred on it::

    T = mean * (1 + k * (std / R - 1))

Window sums come from two summed-area tables (values and squared values)
with a zero border, so every window costs four lookups regardless of its
size.  Windows are clipped at the image border and the divisor is the
number of pixels actually covered, so edge pixels use a smaller sample.

Typical usage
-------------
>>> from imaging.binarize import sauvola_binarize
>>> bw = sauvola_binarize(gray, window_size=25, k=0.2, r=128)
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

DEFAULT_WINDOW_SIZE = 25
DEFAULT_K = 0.2
DEFAULT_R = 128.0


def integral_tables(gray: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Return ``(S, S2)``, the (H+1)x(W+1) summed-area tables of *gray* and *gray*²."""
    g = gray.astype(np.float64)
    h, w = g.shape
    s = np.zeros((h + 1, w + 1), dtype=np.float64)
    s2 = np.zeros((h + 1, w + 1), dtype=np.float64)
    s[1:, 1:] = g.cumsum(axis=0).cumsum(axis=1)
    s2[1:, 1:] = (g * g).cumsum(axis=0).cumsum(axis=1)
    return s, s2


def _window_bounds(n: int, radius: int) -> Tuple[np.ndarray, np.ndarray]:
    """Half-open [lo, hi) window bounds per index, clipped to [0, n]."""
    idx = np.arange(n)
    lo = np.clip(idx - radius, 0, n)
    hi = np.clip(idx + radius + 1, 0, n)
    return lo, hi


def _rect_sums(table: np.ndarray, y0, y1, x0, x1) -> np.ndarray:
    return (
        table[y1[:, None], x1[None, :]]
        - table[y0[:, None], x1[None, :]]
        - table[y1[:, None], x0[None, :]]
        + table[y0[:, None], x0[None, :]]
    )


def local_mean_std(gray: np.ndarray, window_size: int) -> Tuple[np.ndarray, np.ndarray]:
    """Per-pixel mean and population std over a clipped square window."""
    h, w = gray.shape
    radius = window_size // 2
    s, s2 = integral_tables(gray)
    y0, y1 = _window_bounds(h, radius)
    x0, x1 = _window_bounds(w, radius)

    area = (y1 - y0)[:, None] * (x1 - x0)[None, :]
    mean = _rect_sums(s, y0, y1, x0, x1) / area
    mean_sq = _rect_sums(s2, y0, y1, x0, x1) / area
    # float cancellation can push the variance slightly negative
    std = np.sqrt(np.maximum(mean_sq - mean * mean, 0.0))
    return mean, std


def sauvola_threshold(
    gray: np.ndarray,
    window_size: int = DEFAULT_WINDOW_SIZE,
    k: float = DEFAULT_K,
    r: float = DEFAULT_R,
) -> np.ndarray:
    mean, std = local_mean_std(gray, window_size)
    return mean * (1.0 + k * ((std / r) - 1.0))


def sauvola_binarize(
    gray: np.ndarray,
    window_size: int = DEFAULT_WINDOW_SIZE,
    k: float = DEFAULT_K,
    r: float = DEFAULT_R,
) -> np.ndarray:
    """
    Binarize a single-channel image.

    Parameters
    ----------
    gray : np.ndarray
        HxW grayscale buffer (any numeric dtype, values on a 0-255 scale).
    window_size : int
        Side of the square window; the radius is ``window_size // 2``.
    k : float
        Sensitivity; larger values push the threshold below the mean.
    r : float
        Dynamic range of the standard deviation.

    Returns
    -------
    np.ndarray
        HxW uint8 array holding only 0 (ink) and 255 (background).
    """
    if gray.ndim != 2:
        raise ValueError(f"expected a 2-D grayscale buffer, got shape {gray.shape}")
    if window_size < 1:
        raise ValueError("window_size must be positive")
    if gray.size == 0:
        return np.zeros(gray.shape, dtype=np.uint8)

    threshold = sauvola_threshold(gray, window_size=window_size, k=k, r=r)
    return np.where(gray.astype(np.float64) > threshold, 255, 0).astype(np.uint8)
