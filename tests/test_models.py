"""
tests/test_models.py

Unit tests for sample validation, wire format and batch partitioning.
"""

import math
from datetime import datetime, timedelta

import pytest

from geospider.errors import ValidationError
from geospider.models import (
    LocationSample,
    StoredSample,
    SyncBatch,
    SyncOutcome,
    partition_batches,
)
from tests.fixtures import TEST_TIME, build_sample


def test_valid_sample_passes_validation() -> None:
    build_sample().validate()


def test_sample_with_only_required_fields_is_valid() -> None:
    build_sample(accuracy=None, altitude=None, speed=None, bearing=None).validate()


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"latitude": 91.0}, "latitude"),
        ({"latitude": -90.5}, "latitude"),
        ({"longitude": 181.0}, "longitude"),
        ({"longitude": -180.1}, "longitude"),
        ({"accuracy": -1.0}, "accuracy"),
        ({"speed": -0.1}, "speed"),
        ({"bearing": 360.5}, "bearing"),
        ({"bearing": -1.0}, "bearing"),
        ({"altitude": -10001.0}, "altitude"),
        ({"provider": ""}, "provider"),
        ({"provider": "   "}, "provider"),
        ({"latitude": math.nan}, "latitude"),
        ({"accuracy": math.inf}, "accuracy"),
    ],
)
def test_out_of_range_fields_are_rejected(overrides: dict, field: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        build_sample(**overrides).validate()
    assert exc_info.value.field == field


def test_boundary_values_are_accepted() -> None:
    build_sample(latitude=90.0, longitude=-180.0, bearing=360.0, speed=0.0).validate()
    build_sample(latitude=-90.0, longitude=180.0, bearing=0.0, accuracy=0.0).validate()


def test_naive_timestamp_is_rejected() -> None:
    with pytest.raises(ValidationError, match="timestamp"):
        build_sample(timestamp=datetime(2024, 6, 15, 13, 30)).validate()


def test_validation_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        build_sample(latitude=100.0).validate()


def test_wire_format_uses_unix_seconds() -> None:
    sample = build_sample(timestamp=TEST_TIME + timedelta(milliseconds=750))
    wire = sample.to_wire()

    assert wire == {
        "latitude": 37.7749,
        "longitude": -122.4194,
        "accuracy": 10.0,
        "altitude": 50.0,
        "speed": 5.5,
        "bearing": 180.0,
        "timestamp": int(TEST_TIME.timestamp()),
        "provider": "gps",
    }


def test_wire_format_keeps_absent_fields_as_null() -> None:
    wire = build_sample(accuracy=None, bearing=None).to_wire()
    assert wire["accuracy"] is None
    assert wire["bearing"] is None


def test_from_wire_restores_sample() -> None:
    sample = build_sample(speed=None)
    assert LocationSample.from_wire(sample.to_wire()) == sample


def test_geojson_feature_uses_lon_lat_order() -> None:
    feature = build_sample().to_geojson_feature()

    assert feature["type"] == "Feature"
    assert feature["geometry"] == {
        "type": "Point",
        "coordinates": [-122.4194, 37.7749, 50.0],
    }
    assert feature["properties"]["provider"] == "gps"
    assert feature["properties"]["timestamp"] == int(TEST_TIME.timestamp())


def test_geojson_feature_without_altitude_is_two_dimensional() -> None:
    feature = build_sample(altitude=None).to_geojson_feature()
    assert feature["geometry"]["coordinates"] == [-122.4194, 37.7749]


def _stored(minutes: int, record_id: str | None = None) -> StoredSample:
    return StoredSample(
        record_id=record_id or f"id-{minutes}",
        sample=build_sample(timestamp=TEST_TIME + timedelta(minutes=minutes)),
    )


def test_partition_sorts_by_timestamp_and_bounds_batch_size() -> None:
    records = [_stored(m) for m in (4, 0, 3, 1, 2)]

    batches = partition_batches(records, batch_size=2)

    assert [len(b) for b in batches] == [2, 2, 1]
    assert [b.record_ids for b in batches] == [["id-0", "id-1"], ["id-2", "id-3"], ["id-4"]]


def test_partition_keeps_store_order_for_equal_timestamps() -> None:
    records = [_stored(0, "b"), _stored(0, "a"), _stored(0, "c")]
    batches = partition_batches(records, batch_size=10)
    assert batches[0].record_ids == ["b", "a", "c"]


def test_partition_of_nothing_is_empty() -> None:
    assert partition_batches([], batch_size=5) == []


def test_partition_rejects_non_positive_batch_size() -> None:
    with pytest.raises(ValueError):
        partition_batches([_stored(0)], batch_size=0)


def test_batch_payload_wraps_locations() -> None:
    batch = SyncBatch(records=(_stored(0), _stored(1)))
    payload = batch.to_payload()

    assert list(payload) == ["locations"]
    assert len(payload["locations"]) == 2
    assert payload["locations"][0]["timestamp"] < payload["locations"][1]["timestamp"]


def test_sync_outcome_constructors() -> None:
    assert SyncOutcome.succeeded(3) == SyncOutcome(success=True, synced_count=3, error=None)
    failed = SyncOutcome.failed(1, "boom")
    assert not failed.success
    assert failed.synced_count == 1
    assert failed.error == "boom"
