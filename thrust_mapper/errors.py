"""
Exceptions raised by the thrust mapper.
"""


class ThrustMapperError(Exception):
    """Base class for thrust mapper errors."""


class InvalidConfiguration(ThrustMapperError, ValueError):
    """Vehicle, geometry or solver configuration is not usable."""


class GeometryUnavailable(ThrustMapperError):
    """A thruster frame could not be resolved within its timeout."""

    def __init__(self, frame: str, timeout: float, reason: str = ""):
        self.frame = frame
        self.timeout = timeout
        message = f"Could not resolve thruster frame '{frame}' within {timeout:.1f} s"
        if reason:
            message += f": {reason}"
        super().__init__(message)
