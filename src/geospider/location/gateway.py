"""
Location gateway: the boundary between location sources and the collector.

A source may return None when it has no fix. Past this boundary that never
happens: the gateway turns absence and source errors into LocationUnavailable.
"""

import logging
from typing import Protocol

from geospider.errors import LocationUnavailable
from geospider.models import LocationSample
from geospider.utils.logging import log_error


class LocationSource(Protocol):
    """Capability interface implemented by every location source."""

    async def get_current_reading(self) -> LocationSample | None: ...

    def is_enabled(self) -> bool: ...

    async def request_access(self) -> bool: ...


class LocationGateway:
    """Wraps a LocationSource and enforces the no-silent-absence contract."""

    def __init__(self, source: LocationSource, logger: logging.Logger):
        self.source = source
        self.logger = logger

    async def get_current_reading(self) -> LocationSample:
        """
        Get the current reading from the source.

        Raises:
            LocationUnavailable: if the source has no reading or fails
        """
        try:
            reading = await self.source.get_current_reading()
        except LocationUnavailable:
            raise
        except Exception as e:
            raise LocationUnavailable(f"Failed to get current location: {e}") from e

        if reading is None:
            raise LocationUnavailable("Unable to retrieve current location")
        return reading

    def is_enabled(self) -> bool:
        """Check whether the source can produce readings."""
        return self.source.is_enabled()

    async def request_access(self) -> bool:
        """
        Ask the source for permission to read locations.

        A denial is reported as False. Errors while asking are logged and
        also reported as False.
        """
        try:
            return bool(await self.source.request_access())
        except Exception as e:
            log_error(e, self.logger, "Location access request failed")
            return False
