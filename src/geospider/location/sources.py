"""
Location source variants.

- SimulatedLocationSource: deterministic walk, for demos and bench testing
- GpsdLocationSource: real GNSS receiver through gpsd (JSON over TCP)
"""

import asyncio
import json
import logging
import socket
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from geospider.config.settings import RuntimeConfig
from geospider.location.gateway import LocationSource
from geospider.models import LocationSample

# gpsd TPV modes: 0 = unknown, 1 = no fix, 2 = 2D fix, 3 = 3D fix
GPSD_MIN_FIX_MODE = 2
GPSD_WATCH_COMMAND = b'?WATCH={"enable":true,"json":true}\n'

# Readings per simulated track before the walk restarts at the start point
SIMULATED_WALK_LENGTH = 10_000


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SimulatedLocationSource:
    """
    Simulated receiver that walks north-east from a start point.

    Each reading moves 0.001 degrees and varies accuracy, speed and bearing,
    so downstream batches contain distinguishable samples. The walk restarts
    every SIMULATED_WALK_LENGTH readings, so it never leaves valid ranges.
    """

    def __init__(
        self,
        start_latitude: float = 40.7128,
        start_longitude: float = -74.0060,
        step_degrees: float = 0.001,
        fix_delay: float = 0.1,
        enabled: bool = True,
        access_granted: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.start_latitude = start_latitude
        self.start_longitude = start_longitude
        self.step_degrees = step_degrees
        self.fix_delay = fix_delay
        self.enabled = enabled
        self.access_granted = access_granted
        self.clock = clock
        self.readings_count = 0

    async def get_current_reading(self) -> LocationSample | None:
        if not self.enabled:
            return None

        # Simulate time to first fix
        if self.fix_delay > 0:
            await asyncio.sleep(self.fix_delay)

        self.readings_count += 1
        n = self.readings_count % SIMULATED_WALK_LENGTH
        return LocationSample(
            latitude=self.start_latitude + n * self.step_degrees,
            longitude=self.start_longitude + n * self.step_degrees,
            accuracy=5.0 + (n % 3),
            altitude=10.0 + n,
            speed=1.5 + (n % 2),
            bearing=(n * 15.0) % 360,
            timestamp=self.clock(),
            provider="simulated",
        )

    def is_enabled(self) -> bool:
        return self.enabled

    async def request_access(self) -> bool:
        return self.access_granted


class GpsdLocationSource:
    """
    Reads fixes from gpsd (default 127.0.0.1:2947).

    Connects per reading, sends WATCH and returns the first TPV report that
    carries a 2D or 3D fix. Never opens the serial device itself, so there
    is no contention with gpsd.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 2947,
        fix_timeout: float = 10.0,
        logger: logging.Logger | None = None,
    ):
        self.host = host
        self.port = port
        self.fix_timeout = fix_timeout
        self.logger = logger or logging.getLogger("geospider.gpsd")

    async def get_current_reading(self) -> LocationSample | None:
        """Return the next fix, or None if gpsd reports no fix within fix_timeout."""
        try:
            return await asyncio.wait_for(self._read_fix(), timeout=self.fix_timeout)
        except asyncio.TimeoutError:
            self.logger.debug(f"No gpsd fix within {self.fix_timeout:.0f}s")
            return None

    async def _read_fix(self) -> LocationSample | None:
        reader, writer = await asyncio.open_connection(self.host, self.port)
        try:
            writer.write(GPSD_WATCH_COMMAND)
            await writer.drain()

            while True:
                line = await reader.readline()
                if not line:
                    # gpsd closed the connection
                    return None
                try:
                    report = json.loads(line)
                except json.JSONDecodeError:
                    self.logger.debug(f"Skipping malformed gpsd line: {line[:80]!r}")
                    continue

                sample = parse_tpv_report(report)
                if sample is not None:
                    return sample
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

    def is_enabled(self) -> bool:
        """gpsd is usable when its port accepts connections."""
        try:
            with socket.create_connection((self.host, self.port), timeout=1.0):
                return True
        except OSError:
            return False

    async def request_access(self) -> bool:
        # gpsd has no permission model; access means the daemon is reachable
        return self.is_enabled()


def parse_tpv_report(report: dict[str, Any]) -> LocationSample | None:
    """
    Convert a gpsd TPV report into a sample.

    Returns None for non-TPV reports and reports without a position fix.
    """
    if report.get("class") != "TPV":
        return None
    if int(report.get("mode", 0)) < GPSD_MIN_FIX_MODE:
        return None
    if report.get("lat") is None or report.get("lon") is None:
        return None

    altitude = report.get("altMSL", report.get("alt", report.get("altHAE")))

    timestamp = utc_now()
    if raw_time := report.get("time"):
        timestamp = datetime.fromisoformat(str(raw_time).replace("Z", "+00:00"))

    return LocationSample(
        latitude=float(report["lat"]),
        longitude=float(report["lon"]),
        accuracy=_maybe_float(report.get("eph")),
        altitude=_maybe_float(altitude),
        speed=_maybe_float(report.get("speed")),
        bearing=_maybe_float(report.get("track")),
        timestamp=timestamp,
        provider="gpsd",
    )


def build_location_source(config: RuntimeConfig, logger: logging.Logger) -> LocationSource:
    """Select the location source variant named in the configuration."""
    if config.location_source == "gpsd":
        return GpsdLocationSource(host=config.gpsd_host, port=config.gpsd_port, logger=logger)
    return SimulatedLocationSource()


def _maybe_float(value: Any) -> float | None:
    return None if value is None else float(value)
