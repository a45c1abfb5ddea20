"""
tests/fixtures.py

Shared test data and fakes for the collection and sync pipeline.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any

from geospider.config.settings import RuntimeConfig
from geospider.errors import TransportFailure
from geospider.models import LocationSample

TEST_SERVER_URL = "https://api.example.com/locations"
TEST_TIME = datetime(2024, 6, 15, 13, 30, 0, tzinfo=timezone.utc)

test_logger = logging.getLogger("geospider.tests")


def build_sample(
    latitude: float = 37.7749,
    longitude: float = -122.4194,
    timestamp: datetime | None = None,
    provider: str = "gps",
    accuracy: float | None = 10.0,
    altitude: float | None = 50.0,
    speed: float | None = 5.5,
    bearing: float | None = 180.0,
) -> LocationSample:
    """Build a LocationSample with sensible defaults for testing."""
    return LocationSample(
        latitude=latitude,
        longitude=longitude,
        timestamp=timestamp or TEST_TIME,
        provider=provider,
        accuracy=accuracy,
        altitude=altitude,
        speed=speed,
        bearing=bearing,
    )


def build_samples(count: int, start: datetime | None = None) -> list[LocationSample]:
    """Build count samples one minute apart."""
    start = start or TEST_TIME
    return [
        build_sample(latitude=37.0 + i * 0.01, timestamp=start + timedelta(minutes=i))
        for i in range(count)
    ]


def build_config(**overrides: Any) -> RuntimeConfig:
    """Build a RuntimeConfig with test defaults."""
    values: dict[str, Any] = {
        "server_url": TEST_SERVER_URL,
        "collection_interval_seconds": 60,
        "sync_batch_size": 50,
        "max_offline_storage_days": 7,
    }
    values.update(overrides)
    return RuntimeConfig(**values)


class FakeLocationSource:
    """Location source returning queued readings (None and exceptions allowed)."""

    def __init__(self, readings: list[Any] | None = None, enabled: bool = True):
        self.readings = list(readings or [])
        self.enabled = enabled
        self.access_granted = True
        self.calls = 0

    async def get_current_reading(self) -> LocationSample | None:
        self.calls += 1
        if not self.readings:
            return build_sample(timestamp=datetime.now(timezone.utc))
        reading = self.readings.pop(0)
        if isinstance(reading, Exception):
            raise reading
        return reading

    def is_enabled(self) -> bool:
        return self.enabled

    async def request_access(self) -> bool:
        return self.access_granted


class FakeTransport:
    """Transport recording payloads; results are queued (True, False or exceptions)."""

    def __init__(self, results: list[Any] | None = None):
        self.results = list(results or [])
        self.sent: list[dict[str, Any]] = []
        self.closed = False

    async def send(self, endpoint: str, payload: dict[str, Any]) -> bool:
        self.sent.append(payload)
        if not self.results:
            return True
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def aclose(self) -> None:
        self.closed = True


class FakeConnectivity:
    def __init__(self, online: bool = True):
        self.online = online
        self.checked_in_thread: int | None = None

    def is_online(self) -> bool:
        self.checked_in_thread = threading.get_ident()
        return self.online


def unreachable() -> TransportFailure:
    return TransportFailure("POST https://api.example.com/locations failed: connection refused")
