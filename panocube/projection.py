import math

import numpy as np

from .errors import DegenerateInputError


def direction_to_uv(dx, dy, dz):
    """
    Project a 3D direction onto equirectangular texture coordinates.

    - longitude = atan2(z, x), latitude = asin(y) of the normalized vector
    - u = (longitude + pi) / 2pi, v = (latitude + pi/2) / pi, both in [0, 1]
    Accepts floats or numpy arrays; zero-length vectors are rejected.
    """
    if isinstance(dx, np.ndarray) or isinstance(dy, np.ndarray) or isinstance(dz, np.ndarray):
        return _direction_to_uv_array(dx, dy, dz)
    length = math.sqrt(dx * dx + dy * dy + dz * dz)
    if length == 0.0 or not math.isfinite(length):
        raise DegenerateInputError(f"Cannot project direction ({dx}, {dy}, {dz})")
    nx, ny, nz = dx / length, dy / length, dz / length
    longitude = math.atan2(nz, nx)
    latitude = math.asin(min(max(ny, -1.0), 1.0))
    u = (longitude + math.pi) / (2 * math.pi)
    v = (latitude + math.pi / 2) / math.pi
    return u, v


def _direction_to_uv_array(dx, dy, dz):
    dx, dy, dz = np.broadcast_arrays(
        np.asarray(dx, dtype=np.float64),
        np.asarray(dy, dtype=np.float64),
        np.asarray(dz, dtype=np.float64),
    )
    length = np.sqrt(dx * dx + dy * dy + dz * dz)
    if not np.all(length > 0) or not np.all(np.isfinite(length)):
        raise DegenerateInputError("Cannot project zero-length or non-finite directions")
    nx, ny, nz = dx / length, dy / length, dz / length
    longitude = np.arctan2(nz, nx)
    latitude = np.arcsin(np.clip(ny, -1.0, 1.0))
    u = (longitude + np.pi) / (2 * np.pi)
    v = (latitude + np.pi / 2) / np.pi
    return u, v


def uv_to_direction(u, v):
    """Unit direction for equirectangular (u, v); inverse of direction_to_uv."""
    longitude = u * 2 * math.pi - math.pi
    latitude = v * math.pi - math.pi / 2
    c = math.cos(latitude)
    return c * math.cos(longitude), math.sin(latitude), c * math.sin(longitude)


def uv_to_source(u, v, width, height):
    # Row 0 of the source raster is the north pole, so v is flipped.
    return u * width, (1 - v) * height


def direction_to_yaw_pitch(dx, dy, dz):
    """Viewer yaw/pitch in degrees for a direction, e.g. a hotspot position."""
    u, v = direction_to_uv(dx, dy, dz)
    return math.degrees(u * 2 * math.pi - math.pi), math.degrees(v * math.pi - math.pi / 2)
