import os


def _env_int(name, default):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name, default):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


DEFAULT_FACE_SIZE = _env_int("PANOCUBE_FACE_SIZE", 1024)
MAX_FACE_SIZE = _env_int("PANOCUBE_MAX_FACE_SIZE", 4096)
DEFAULT_QUALITY = _env_int("PANOCUBE_JPEG_QUALITY", 90)
DEFAULT_LANCZOS_RADIUS = _env_int("PANOCUBE_LANCZOS_RADIUS", 3)
FETCH_TIMEOUT_SEC = _env_float("PANOCUBE_FETCH_TIMEOUT_SEC", 30.0)
# Equirectangular sources are often far above Pillow's decompression-bomb default.
MAX_IMAGE_PIXELS = _env_int("PANOCUBE_MAX_IMAGE_PIXELS", 32768 * 16384)

IMAGE_FORMATS = {
    "jpeg": ("image/jpeg", ".jpg"),
    "png": ("image/png", ".png"),
    "webp": ("image/webp", ".webp"),
}
FORMAT_ALIASES = {"jpg": "jpeg"}
