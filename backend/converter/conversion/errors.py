"""Failures raised by the conversion collaborators."""


class ConversionError(Exception):
    """Base class for conversion failures with a user-facing message."""


class DecodeFailure(ConversionError):
    """Source bytes are unreadable, corrupt or of an unsupported type."""


class SurfaceUnavailable(ConversionError):
    """A drawing target could not be created."""


class EncodeFailure(ConversionError):
    """The encoder rejected the requested type/quality or produced no output."""
