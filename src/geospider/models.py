"""
Core data model: location samples, stored records, sync batches and outcomes.
"""

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from geospider.errors import ValidationError

# Lowest altitude we accept (deep mines and ocean trenches are above this)
MIN_ALTITUDE_M = -10000.0


@dataclass(frozen=True)
class LocationSample:
    """One observed position with optional quality metadata."""

    latitude: float
    longitude: float
    timestamp: datetime
    provider: str
    accuracy: float | None = None
    altitude: float | None = None
    speed: float | None = None
    bearing: float | None = None

    def validate(self) -> None:
        """
        Check every range and required-field rule.

        Raises:
            ValidationError: naming the first field that is out of range
        """
        _require_finite("latitude", self.latitude)
        if not -90.0 <= self.latitude <= 90.0:
            raise ValidationError("latitude", "must be between -90 and 90 degrees")

        _require_finite("longitude", self.longitude)
        if not -180.0 <= self.longitude <= 180.0:
            raise ValidationError("longitude", "must be between -180 and 180 degrees")

        if self.accuracy is not None:
            _require_finite("accuracy", self.accuracy)
            if self.accuracy < 0:
                raise ValidationError("accuracy", "must be non-negative")

        if self.altitude is not None:
            _require_finite("altitude", self.altitude)
            if self.altitude < MIN_ALTITUDE_M:
                raise ValidationError("altitude", "is below the plausible minimum")

        if self.speed is not None:
            _require_finite("speed", self.speed)
            if self.speed < 0:
                raise ValidationError("speed", "must be non-negative")

        if self.bearing is not None:
            _require_finite("bearing", self.bearing)
            if not 0.0 <= self.bearing <= 360.0:
                raise ValidationError("bearing", "must be between 0 and 360 degrees")

        if not self.provider or not self.provider.strip():
            raise ValidationError("provider", "cannot be empty")

        if self.timestamp.tzinfo is None:
            raise ValidationError("timestamp", "must be timezone-aware")

    @property
    def unix_seconds(self) -> int:
        """Timestamp in whole unix seconds (wire precision)."""
        return int(self.timestamp.timestamp())

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the wire representation used in sync payloads."""
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "altitude": self.altitude,
            "speed": self.speed,
            "bearing": self.bearing,
            "timestamp": self.unix_seconds,
            "provider": self.provider,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "LocationSample":
        """Build a sample from its wire representation."""
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            accuracy=_optional_float(data.get("accuracy")),
            altitude=_optional_float(data.get("altitude")),
            speed=_optional_float(data.get("speed")),
            bearing=_optional_float(data.get("bearing")),
            timestamp=datetime.fromtimestamp(int(data["timestamp"]), tz=timezone.utc),
            provider=str(data["provider"]),
        )

    def to_geojson_feature(self) -> dict[str, Any]:
        """
        Convert to a GeoJSON Feature.

        Coordinates follow GeoJSON order: [longitude, latitude(, altitude)].
        """
        coordinates = [self.longitude, self.latitude]
        if self.altitude is not None:
            coordinates.append(self.altitude)

        return {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": coordinates},
            "properties": {
                "accuracy": self.accuracy,
                "speed": self.speed,
                "bearing": self.bearing,
                "timestamp": self.unix_seconds,
                "provider": self.provider,
            },
        }


@dataclass(frozen=True)
class StoredSample:
    """A sample as held by the offline store."""

    record_id: str
    sample: LocationSample
    synced: bool = False


@dataclass(frozen=True)
class SyncBatch:
    """An ordered, bounded group of unsynced samples sent in one transport call."""

    records: tuple[StoredSample, ...]

    def __len__(self) -> int:
        return len(self.records)

    @property
    def record_ids(self) -> list[str]:
        return [record.record_id for record in self.records]

    def to_payload(self) -> dict[str, Any]:
        """Wire payload for this batch."""
        return {"locations": [record.sample.to_wire() for record in self.records]}


@dataclass(frozen=True)
class SyncOutcome:
    """Result of one sync attempt. Returned to the caller, never persisted."""

    success: bool
    synced_count: int = 0
    error: str | None = None

    @classmethod
    def succeeded(cls, synced_count: int = 0) -> "SyncOutcome":
        return cls(success=True, synced_count=synced_count)

    @classmethod
    def failed(cls, synced_count: int, error: str) -> "SyncOutcome":
        return cls(success=False, synced_count=synced_count, error=error)


def partition_batches(records: Iterable[StoredSample], batch_size: int) -> list[SyncBatch]:
    """
    Sort records by timestamp and split them into contiguous batches.

    The sort is stable, so records sharing a timestamp keep their store order.

    Args:
        records: Unsynced records in any order
        batch_size: Maximum records per batch (must be positive)

    Returns:
        Batches in ascending timestamp order, each holding at most batch_size records
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    ordered: Sequence[StoredSample] = sorted(records, key=lambda r: r.sample.timestamp)
    return [
        SyncBatch(records=tuple(ordered[start : start + batch_size]))
        for start in range(0, len(ordered), batch_size)
    ]


def _require_finite(field: str, value: float) -> None:
    if not math.isfinite(value):
        raise ValidationError(field, "must be a finite number")


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)
