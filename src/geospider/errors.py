"""
Error taxonomy shared by the collection and sync pipeline.
"""


class GeoSpiderError(Exception):
    """Base class for all geospider failures."""


class ValidationError(GeoSpiderError, ValueError):
    """A sample or configuration value violates a range or required-field rule."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class LocationUnavailable(GeoSpiderError):
    """The location source cannot produce a reading."""


class ServiceUnavailable(GeoSpiderError):
    """The location source is disabled, so collection cannot start."""


class StoreFailure(GeoSpiderError):
    """An offline store operation failed."""


class TransportFailure(GeoSpiderError):
    """A batch could not be delivered to the remote endpoint."""


class ConfigurationError(GeoSpiderError):
    """Configuration is malformed or incomplete."""
