class PanocubeError(Exception):
    pass


class DecodeError(PanocubeError):
    """Source image could not be fetched or decoded."""


class DegenerateInputError(PanocubeError, ValueError):
    """Zero-length direction, bad face size or otherwise unusable options."""


class IncompleteResultError(PanocubeError):
    """A cube image set is missing faces or holds empty images."""


class ConversionCancelled(PanocubeError):
    pass
