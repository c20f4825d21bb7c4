from .converter import (
    CancelToken,
    ConversionOptions,
    ConversionState,
    CubemapConversion,
    assemble_cross,
    convert,
    convert_sync,
    is_complete,
    render_face,
)
from .errors import ConversionCancelled, DecodeError, DegenerateInputError, IncompleteResultError, PanocubeError
from .faces import FACE_ORDER, FaceId, face_direction, locate
from .imageio import Raster, encode_raster, load_raster, save_raster, to_data_uri
from .projection import direction_to_uv, direction_to_yaw_pitch, uv_to_direction

__version__ = "0.1.0"
