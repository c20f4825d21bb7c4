import enum

import numpy as np

from .errors import DegenerateInputError


class FaceId(enum.Enum):
    FRONT = "front"
    BACK = "back"
    LEFT = "left"
    RIGHT = "right"
    TOP = "top"
    BOTTOM = "bottom"

    @property
    def label(self):
        return FACE_LABELS[self]

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise DegenerateInputError(f"Unknown cube face: {value!r}") from None


FACE_ORDER = (FaceId.FRONT, FaceId.BACK, FaceId.LEFT, FaceId.RIGHT, FaceId.TOP, FaceId.BOTTOM)

# Labels as shown next to each face in the tour viewer.
FACE_LABELS = {
    FaceId.FRONT: "Front (Z+)",
    FaceId.BACK: "Back (Z-)",
    FaceId.LEFT: "Left (X-)",
    FaceId.RIGHT: "Right (X+)",
    FaceId.TOP: "Top (Y+)",
    FaceId.BOTTOM: "Bottom (Y-)",
}


def _const(value, like):
    if isinstance(like, np.ndarray):
        return np.full(like.shape, float(value))
    return float(value)


def face_direction(face, x, y):
    """
    Direction (not normalized) through face-local coordinate (x, y) in [-1, 1].
    x and y may be floats or numpy arrays of the same shape.
    """
    face = FaceId.parse(face)
    if face is FaceId.FRONT:
        return _const(-1, x), -y, -x
    elif face is FaceId.BACK:
        return _const(1, x), -y, x
    elif face is FaceId.LEFT:
        return -x, -y, _const(1, x)
    elif face is FaceId.RIGHT:
        return x, -y, _const(-1, x)
    elif face is FaceId.TOP:
        return -y, _const(1, x), -x
    elif face is FaceId.BOTTOM:
        return y, _const(-1, x), -x
    raise DegenerateInputError(f"Unknown cube face: {face!r}")


def face_coordinates(face_size):
    """Pixel-centre coordinates of a face row/column mapped onto [-1, 1]."""
    idx = np.arange(face_size, dtype=np.float64)
    return (2.0 * (idx + 0.5)) / face_size - 1.0


def face_grid(face, face_size):
    coords = face_coordinates(face_size)
    # Rows index y, columns index x.
    xs, ys = np.meshgrid(coords, coords)
    return face_direction(face, xs, ys)


def locate(direction):
    """
    Inverse of face_direction: which face a direction passes through and where.

    Returns (FaceId, x, y) with face_direction(face, x, y) parallel to direction.
    The dominant axis picks the face; ties go to the earlier face in FACE_ORDER.
    """
    dx, dy, dz = (float(c) for c in direction)
    ax, ay, az = abs(dx), abs(dy), abs(dz)
    major = max(ax, ay, az)
    if major == 0.0:
        raise DegenerateInputError("Cannot locate a zero-length direction")

    if ax == major and dx < 0:
        return FaceId.FRONT, -dz / ax, -dy / ax
    if ax == major:
        return FaceId.BACK, dz / ax, -dy / ax
    if az == major and dz > 0:
        return FaceId.LEFT, -dx / az, -dy / az
    if az == major:
        return FaceId.RIGHT, dx / az, -dy / az
    if dy > 0:
        return FaceId.TOP, -dz / ay, -dx / ay
    return FaceId.BOTTOM, -dz / ay, dx / ay


def face_pixel(x, y, face_size):
    """Face-local coordinate back to (column, row) pixel indices."""
    col = int(np.floor((x + 1.0) * face_size / 2.0))
    row = int(np.floor((y + 1.0) * face_size / 2.0))
    return min(max(col, 0), face_size - 1), min(max(row, 0), face_size - 1)
