import base64
import binascii
import logging
import os
from io import BytesIO
from pathlib import Path
from urllib.parse import unquote_to_bytes

import cv2
import numpy as np
import requests
from PIL import Image, ImageOps

from . import config
from .errors import DecodeError, DegenerateInputError, PanocubeError

logger = logging.getLogger(__name__)

# Process-wide Pillow setting; set once so concurrent decodes never race on it.
Image.MAX_IMAGE_PIXELS = config.MAX_IMAGE_PIXELS


class Raster:
    """Immutable RGBA8 image, stored as a read-only (height, width, 4) uint8 array."""

    __slots__ = ("_pixels",)

    def __init__(self, pixels):
        arr = np.asarray(pixels)
        if arr.ndim == 2:
            arr = arr[:, :, None].repeat(3, axis=2)
        if arr.ndim != 3 or arr.shape[2] not in (3, 4):
            raise DecodeError(f"Unsupported raster shape {arr.shape}")
        if arr.shape[0] == 0 or arr.shape[1] == 0:
            raise DecodeError("Image has no pixels")
        if arr.shape[2] == 3:
            alpha = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
            arr = np.concatenate([arr.astype(np.uint8), alpha], axis=2)
        arr = np.array(arr, dtype=np.uint8, copy=True)
        arr.setflags(write=False)
        self._pixels = arr

    @property
    def pixels(self):
        return self._pixels

    @property
    def width(self):
        return self._pixels.shape[1]

    @property
    def height(self):
        return self._pixels.shape[0]

    @property
    def size(self):
        return self.width, self.height

    def pixel(self, x, y):
        return tuple(int(c) for c in self._pixels[y, x])

    def to_pil(self):
        return Image.fromarray(np.ascontiguousarray(self._pixels))

    def __len__(self):
        return self.width * self.height

    def __repr__(self):
        return f"Raster({self.width}x{self.height})"


def normalize_format(image_format):
    fmt = (image_format or "").strip().lower().lstrip(".")
    fmt = config.FORMAT_ALIASES.get(fmt, fmt)
    if fmt not in config.IMAGE_FORMATS:
        raise DegenerateInputError(f"Unsupported image format: {image_format!r}")
    return fmt


def load_raster(source, timeout=None):
    """
    Decode an image source into a Raster.

    source may be an http(s) URL, a data: URI, a filesystem path, raw bytes
    or an opened PIL image. Every failure surfaces as DecodeError.
    """
    if isinstance(source, Image.Image):
        return _from_pil(source)
    if isinstance(source, (bytes, bytearray, memoryview)):
        return decode_bytes(bytes(source))
    if isinstance(source, Path):
        return _read_file(source)
    if not isinstance(source, str):
        raise DecodeError(f"Unsupported image source type: {type(source).__name__}")

    src = source.strip()
    if not src:
        raise DecodeError("Empty image source")
    if src[:5].lower() == "data:":
        return decode_bytes(parse_data_uri(src))
    if src.lower().startswith(("http://", "https://")):
        return decode_bytes(_fetch(src, timeout))
    return _read_file(Path(src).expanduser())


def parse_data_uri(uri):
    header, sep, payload = uri.partition(",")
    if not sep:
        raise DecodeError("Malformed data URI (missing ',')")
    if header.lower().endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"Malformed base64 payload in data URI: {e}") from e
    return unquote_to_bytes(payload)


def _fetch(url, timeout=None):
    timeout = config.FETCH_TIMEOUT_SEC if timeout is None else timeout
    try:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise DecodeError(f"Failed to fetch image {url}: {e}") from e
    logger.debug(f"Fetched {len(resp.content)} bytes from {url}")
    return resp.content


def _read_file(path):
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise DecodeError(f"Failed to read image {path}: {e}") from e
    return decode_bytes(data)


def decode_bytes(data):
    if not data:
        raise DecodeError("Image payload is empty")
    try:
        with Image.open(BytesIO(data)) as im:
            im.load()
            return _from_pil(im)
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        raise DecodeError(f"Failed to decode image: {e}") from e


def _from_pil(im):
    im = ImageOps.exif_transpose(im)
    if im.width <= 0 or im.height <= 0:
        raise DecodeError("Image has no pixels")
    if im.mode != "RGBA":
        im = im.convert("RGBA")
    return Raster(np.asarray(im))


def encode_raster(raster, image_format="jpeg", quality=None):
    fmt = normalize_format(image_format)
    quality = config.DEFAULT_QUALITY if quality is None else int(quality)
    if fmt == "jpeg":
        # JPEG has no alpha channel.
        img = cv2.cvtColor(raster.pixels, cv2.COLOR_RGBA2BGR)
        params = [cv2.IMWRITE_JPEG_QUALITY, quality]
    elif fmt == "webp":
        img = cv2.cvtColor(raster.pixels, cv2.COLOR_RGBA2BGRA)
        params = [cv2.IMWRITE_WEBP_QUALITY, quality]
    else:
        img = cv2.cvtColor(raster.pixels, cv2.COLOR_RGBA2BGRA)
        params = [cv2.IMWRITE_PNG_COMPRESSION, 3]
    ok, buf = cv2.imencode(config.IMAGE_FORMATS[fmt][1], img, params)
    if not ok:
        raise PanocubeError(f"OpenCV failed to encode {raster!r} as {fmt}")
    return buf.tobytes()


def to_data_uri(data, image_format="jpeg"):
    mime = config.IMAGE_FORMATS[normalize_format(image_format)][0]
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def save_raster(raster, path, quality=None):
    ext = os.path.splitext(str(path))[1]
    data = encode_raster(raster, ext or "jpeg", quality=quality)
    with open(path, "wb") as f:
        f.write(data)
    return path
