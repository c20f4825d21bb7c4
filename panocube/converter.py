import asyncio
import dataclasses
import enum
import logging
import threading
import time
from typing import Any, Callable, Optional

import numpy as np

from . import config
from .errors import ConversionCancelled, DegenerateInputError, IncompleteResultError, PanocubeError
from .faces import FACE_ORDER, FaceId, face_grid
from .imageio import Raster, encode_raster, load_raster, normalize_format, to_data_uri
from .projection import direction_to_uv
from .resample import bilinear, lanczos

logger = logging.getLogger(__name__)

OUTPUT_KINDS = ("data_uri", "bytes", "raster")


class ConversionState(enum.Enum):
    NOT_STARTED = "not_started"
    LOADING = "loading"
    RENDERING = "rendering"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CancelToken:
    """Coarse cancellation flag, checked between faces."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self):
        return self._event.is_set()


@dataclasses.dataclass
class ConversionOptions:
    face_size: int = config.DEFAULT_FACE_SIZE
    high_quality: bool = True
    on_progress: Optional[Callable[[float, FaceId], Any]] = None
    lanczos_radius: int = config.DEFAULT_LANCZOS_RADIUS
    image_format: str = "jpeg"
    quality: int = config.DEFAULT_QUALITY
    output: str = "data_uri"
    fetch_timeout: Optional[float] = None
    cancel_token: Optional[CancelToken] = None

    def validate(self):
        _check_face_size(self.face_size)
        if isinstance(self.lanczos_radius, bool) or not isinstance(self.lanczos_radius, int) or self.lanczos_radius < 1:
            raise DegenerateInputError(f"lanczos_radius must be a positive integer, got {self.lanczos_radius!r}")
        if self.output not in OUTPUT_KINDS:
            raise DegenerateInputError(f"output must be one of {OUTPUT_KINDS}, got {self.output!r}")
        if self.output != "raster":
            self.image_format = normalize_format(self.image_format)
            if isinstance(self.quality, bool) or not isinstance(self.quality, int) or not 1 <= self.quality <= 100:
                raise DegenerateInputError(f"quality must be an integer in 1..100, got {self.quality!r}")
        if self.on_progress is not None and not callable(self.on_progress):
            raise DegenerateInputError("on_progress must be callable")
        return self


def _check_face_size(face_size):
    if isinstance(face_size, bool) or not isinstance(face_size, (int, np.integer)) or face_size <= 0:
        raise DegenerateInputError(f"face_size must be a positive integer, got {face_size!r}")
    return int(face_size)


def render_face(source, face, face_size, high_quality=True, lanczos_radius=3):
    """
    Render one square cube face from an equirectangular raster.

    Every output pixel centre is mapped face -> direction -> (u, v) -> source
    coordinate (u * W, (1 - v) * H) and resampled there. The whole face is
    computed as one numpy batch.
    """
    face = FaceId.parse(face)
    face_size = _check_face_size(face_size)
    started = time.monotonic()

    dx, dy, dz = face_grid(face, face_size)
    u, v = direction_to_uv(dx, dy, dz)
    src_x = u * source.width
    src_y = (1 - v) * source.height

    if high_quality:
        pixels = lanczos(source.pixels, src_x, src_y, lanczos_radius)
    else:
        pixels = bilinear(source.pixels, src_x, src_y)

    logger.debug(
        f"Rendered {face.value} face {face_size}x{face_size} "
        f"({'lanczos' if high_quality else 'bilinear'}) in {time.monotonic() - started:.3f}s"
    )
    return Raster(pixels)


def is_complete(images):
    """True iff all six faces are present and each holds a non-empty image."""
    if not isinstance(images, dict):
        return False
    for face in FACE_ORDER:
        value = images.get(face.value)
        if isinstance(value, (str, bytes, Raster)):
            if len(value) == 0:
                return False
        else:
            return False
    return True


class CubemapConversion:
    """
    One conversion of a panorama source into six cube faces.

    State moves NOT_STARTED -> LOADING -> RENDERING -> COMPLETE; FAILED and
    CANCELLED are terminal and may be entered from any step. A conversion
    object runs once.
    """

    def __init__(self, source, options=None):
        self.source = source
        self.options = options or ConversionOptions()
        self.state = ConversionState.NOT_STARTED
        self.face_index = None
        self.current_face = None
        self.progress = 0.0
        self.error = None

    def _check_cancel(self):
        token = self.options.cancel_token
        if token is not None and token.cancelled:
            raise ConversionCancelled("Conversion cancelled")

    def _report(self, percent, face):
        self.progress = percent
        if self.options.on_progress is not None:
            self.options.on_progress(percent, face)

    def _finalize(self, raster):
        opts = self.options
        if opts.output == "raster":
            return raster
        data = encode_raster(raster, opts.image_format, opts.quality)
        if opts.output == "bytes":
            return data
        return to_data_uri(data, opts.image_format)

    async def run(self):
        if self.state is not ConversionState.NOT_STARTED:
            raise PanocubeError(f"Conversion already {self.state.value}")
        opts = self.options
        try:
            opts.validate()
            self._check_cancel()

            self.state = ConversionState.LOADING
            source = await asyncio.to_thread(load_raster, self.source, opts.fetch_timeout)
            filter_name = f"lanczos a={opts.lanczos_radius}" if opts.high_quality else "bilinear"
            logger.info(
                f"Converting {source.width}x{source.height} panorama to {opts.face_size}px faces ({filter_name})"
            )

            self.state = ConversionState.RENDERING
            result = {}
            for index, face in enumerate(FACE_ORDER):
                self.face_index = index
                self.current_face = face
                self._report(index / len(FACE_ORDER) * 100, face)
                raster = render_face(source, face, opts.face_size, opts.high_quality, opts.lanczos_radius)
                result[face.value] = self._finalize(raster)
                # Let the event loop run between faces, never inside one.
                await asyncio.sleep(0)
                if index < len(FACE_ORDER) - 1:
                    self._check_cancel()

            self._report(100.0, FACE_ORDER[-1])
            if not is_complete(result):
                raise IncompleteResultError(f"Cube image set is incomplete: {sorted(result)}")
        except ConversionCancelled as e:
            self.state = ConversionState.CANCELLED
            self.error = e
            logger.info(f"Conversion cancelled at face index {self.face_index}")
            raise
        except Exception as e:
            logger.warning(f"Conversion failed while {self.state.value}: {e}")
            self.state = ConversionState.FAILED
            self.error = e
            raise
        self.state = ConversionState.COMPLETE
        logger.info("Conversion complete")
        return result


def _merge_options(options, overrides):
    if options is None:
        return ConversionOptions(**overrides)
    if overrides:
        return dataclasses.replace(options, **overrides)
    return options


async def convert(source, options=None, **overrides):
    """
    Convert an equirectangular panorama into a dict of six cube faces.

    source: URL, data URI, path, bytes or PIL image.
    options: ConversionOptions; keyword overrides are applied on top.
    Returns {"front": ..., "back": ..., "left": ..., "right": ..., "top": ..., "bottom": ...}.
    """
    return await CubemapConversion(source, _merge_options(options, overrides)).run()


def convert_sync(source, options=None, **overrides):
    return asyncio.run(convert(source, options, **overrides))


def assemble_cross(images):
    """
    Lay six faces out as a horizontal cross (4 x 3 faces):

            top
      left front right back
            bottom
    """
    faces = {}
    for face in FACE_ORDER:
        value = images[face.value]
        faces[face] = value if isinstance(value, Raster) else load_raster(value)
    size = faces[FaceId.FRONT].width
    for face, raster in faces.items():
        if raster.width != size or raster.height != size:
            raise DegenerateInputError(f"Face {face.value} is {raster.width}x{raster.height}, expected {size}x{size}")

    layout = {
        FaceId.TOP: (0, 1),
        FaceId.LEFT: (1, 0),
        FaceId.FRONT: (1, 1),
        FaceId.RIGHT: (1, 2),
        FaceId.BACK: (1, 3),
        FaceId.BOTTOM: (2, 1),
    }
    canvas = np.zeros((3 * size, 4 * size, 4), dtype=np.uint8)
    for face, (row, col) in layout.items():
        canvas[row * size:(row + 1) * size, col * size:(col + 1) * size] = faces[face].pixels
    return Raster(canvas)
