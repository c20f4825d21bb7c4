"""
Reconstruction filters for sampling an equirectangular raster at fractional
source coordinates.

Both filters wrap horizontally (longitude is cylindrical) and clamp vertically
(the poles are not continuous). Coordinates follow the pixel grid directly:
sampling at (x, y) with integer x, y returns pixel [y, x] unchanged.
"""
import math

import numpy as np

from .errors import DegenerateInputError


def _pixels_of(source):
    return getattr(source, "pixels", source)


def _to_uint8(values):
    # Round half up, then clamp to the 8-bit range.
    return np.clip(np.floor(values + 0.5), 0, 255).astype(np.uint8)


def _check_radius(a):
    if isinstance(a, bool) or not isinstance(a, (int, np.integer)) or a < 1:
        raise DegenerateInputError(f"Lanczos radius must be a positive integer, got {a!r}")
    return int(a)


def lanczos_kernel(t, a=3):
    """L(t) = 1 at 0, 0 outside (-a, a), a*sin(pi t)*sin(pi t / a) / (pi t)^2 otherwise."""
    if np.ndim(t) == 0:
        t = float(t)
        if t == 0:
            return 1.0
        if abs(t) >= a:
            return 0.0
        pt = math.pi * t
        return a * math.sin(pt) * math.sin(pt / a) / (pt * pt)
    t = np.asarray(t, dtype=np.float64)
    pt = np.pi * t
    with np.errstate(divide="ignore", invalid="ignore"):
        k = a * np.sin(pt) * np.sin(pt / a) / (pt * pt)
    k = np.where(np.abs(t) >= a, 0.0, k)
    return np.where(t == 0, 1.0, k)


def bilinear(pixels, x, y):
    """Bilinear sample of an (H, W, 4) array at coordinate arrays x, y; returns uint8 (..., 4)."""
    pixels = _pixels_of(pixels)
    h, w = pixels.shape[:2]
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)

    x0 = np.floor(x)
    y0 = np.floor(y)
    fx = (x - x0)[..., None]
    fy = (y - y0)[..., None]
    x0 = x0.astype(np.int64)
    y0 = y0.astype(np.int64)

    sx0 = np.mod(x0, w)
    sx1 = np.mod(x0 + 1, w)
    sy0 = np.clip(y0, 0, h - 1)
    sy1 = np.clip(y0 + 1, 0, h - 1)

    c00 = pixels[sy0, sx0].astype(np.float64)
    c10 = pixels[sy0, sx1].astype(np.float64)
    c01 = pixels[sy1, sx0].astype(np.float64)
    c11 = pixels[sy1, sx1].astype(np.float64)

    top = c00 + (c10 - c00) * fx
    bottom = c01 + (c11 - c01) * fx
    return _to_uint8(top + (bottom - top) * fy)


def lanczos(pixels, x, y, a=3):
    """
    Separable windowed-sinc sample with kernel radius a.

    Taps run from -(a - 1) to a on each axis around floor(x), floor(y), i.e.
    2a taps per axis. Where the weights sum to zero or less the nearest
    sample is returned instead.
    """
    a = _check_radius(a)
    pixels = _pixels_of(pixels)
    h, w = pixels.shape[:2]
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)

    x0 = np.floor(x).astype(np.int64)
    y0 = np.floor(y).astype(np.int64)
    taps = range(-a + 1, a + 1)

    wx = {i: lanczos_kernel(x - (x0 + i), a) for i in taps}
    wy = {j: lanczos_kernel(y - (y0 + j), a) for j in taps}
    cols = {i: np.mod(x0 + i, w) for i in taps}
    rows = {j: np.clip(y0 + j, 0, h - 1) for j in taps}

    acc = np.zeros(x.shape + (4,), dtype=np.float64)
    weight_sum = np.zeros(x.shape, dtype=np.float64)
    for j in taps:
        for i in taps:
            weight = wx[i] * wy[j]
            acc += pixels[rows[j], cols[i]] * weight[..., None]
            weight_sum += weight

    nearest = pixels[rows[0], cols[0]].astype(np.float64)
    positive = weight_sum > 0
    safe_sum = np.where(positive, weight_sum, 1.0)[..., None]
    out = np.where(positive[..., None], acc / safe_sum, nearest)
    return _to_uint8(out)


def sample_bilinear(raster, x, y):
    """Single bilinear sample at (x, y) as an (r, g, b, a) tuple of ints."""
    out = bilinear(raster, np.array([x], dtype=np.float64), np.array([y], dtype=np.float64))
    return tuple(int(c) for c in out[0])


def sample_lanczos(raster, x, y, a=3):
    out = lanczos(raster, np.array([x], dtype=np.float64), np.array([y], dtype=np.float64), a)
    return tuple(int(c) for c in out[0])
