"""
Parquet-backed offline store using Polars and Apache Arrow.

All samples live in one Parquet file. Every mutation builds a new frame,
writes it to a temporary file and atomically replaces the old one; the
in-memory frame is only swapped after the write succeeded, so a failed
write leaves both disk and memory at the previous state.
"""

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import polars as pl
import pyarrow as pa

from geospider.errors import StoreFailure
from geospider.models import LocationSample, StoredSample
from geospider.utils.uuid_gen import generate_record_id

# Arrow schema for type safety; timestamps keep millisecond precision
ARROW_SCHEMA = pa.schema(
    [
        ("record_id", pa.string()),
        ("timestamp", pa.timestamp("ms", tz="UTC")),
        ("latitude", pa.float64()),
        ("longitude", pa.float64()),
        ("accuracy", pa.float64()),
        ("altitude", pa.float64()),
        ("speed", pa.float64()),
        ("bearing", pa.float64()),
        ("provider", pa.string()),
        ("synced", pa.bool_()),
    ]
)

STORE_ERRORS = (OSError, pl.exceptions.PolarsError, pa.ArrowException)


class ParquetOfflineStore:
    """
    Durable offline buffer.

    Features:
    - Single Parquet file, loaded lazily on first use
    - Atomic replace on every mutation
    - Operations serialized by an asyncio lock, file I/O off the event loop
    """

    def __init__(
        self,
        path: Path,
        compression: str = "zstd",
        logger: logging.Logger | None = None,
    ):
        self.path = Path(path)
        self.compression = compression
        self.logger = logger or logging.getLogger("geospider.store")
        self._frame: pl.DataFrame | None = None
        self._lock = asyncio.Lock()

    async def _loaded(self) -> pl.DataFrame:
        if self._frame is None:
            try:
                self._frame = await asyncio.to_thread(self._load)
            except STORE_ERRORS as e:
                raise StoreFailure(f"Failed to open offline store {self.path}: {e}") from e
        return self._frame

    def _load(self) -> pl.DataFrame:
        if not self.path.exists():
            return pl.from_arrow(ARROW_SCHEMA.empty_table())

        frame = pl.read_parquet(self.path)
        self.logger.debug(f"Loaded {frame.height} samples from {self.path.name}")
        return frame

    def _persist(self, frame: pl.DataFrame) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".parquet.tmp")
        frame.write_parquet(
            str(tmp_path),
            compression=self.compression,
            statistics=True,
            use_pyarrow=True,
        )
        tmp_path.replace(self.path)

    async def _commit(self, frame: pl.DataFrame, action: str) -> None:
        try:
            await asyncio.to_thread(self._persist, frame)
        except STORE_ERRORS as e:
            raise StoreFailure(f"Failed to {action}: {e}") from e
        self._frame = frame

    async def append(self, sample: LocationSample) -> str:
        sample.validate()
        record_id = generate_record_id()
        row = pl.from_arrow(
            pa.Table.from_pylist([_to_row(record_id, sample)], schema=ARROW_SCHEMA)
        )

        async with self._lock:
            frame = await self._loaded()
            await self._commit(pl.concat([frame, row], how="vertical"), "append sample")
        return record_id

    async def list_unsynced(self) -> list[StoredSample]:
        async with self._lock:
            frame = await self._loaded()
            pending = frame.filter(~pl.col("synced")).sort("timestamp", maintain_order=True)
        return [_to_stored(row) for row in pending.iter_rows(named=True)]

    async def list_all(self) -> list[StoredSample]:
        async with self._lock:
            frame = await self._loaded()
            ordered = frame.sort("timestamp", maintain_order=True)
        return [_to_stored(row) for row in ordered.iter_rows(named=True)]

    async def mark_synced(self, record_ids: Sequence[str]) -> None:
        ids = list(record_ids)
        if not ids:
            return

        async with self._lock:
            frame = await self._loaded()
            updated = frame.with_columns(
                pl.when(pl.col("record_id").is_in(ids))
                .then(pl.lit(True))
                .otherwise(pl.col("synced"))
                .alias("synced")
            )
            await self._commit(updated, f"mark {len(ids)} samples synced")

    async def delete_older_than(self, cutoff: datetime) -> int:
        cutoff_ms = int(cutoff.astimezone(timezone.utc).timestamp() * 1000)

        async with self._lock:
            frame = await self._loaded()
            kept = frame.filter(pl.col("timestamp").dt.epoch("ms") >= cutoff_ms)
            removed = frame.height - kept.height
            if removed:
                await self._commit(kept, "evict old samples")
        return removed

    async def delete_synced(self) -> int:
        async with self._lock:
            frame = await self._loaded()
            kept = frame.filter(~pl.col("synced"))
            removed = frame.height - kept.height
            if removed:
                await self._commit(kept, "delete synced samples")
        return removed

    async def count(self) -> int:
        async with self._lock:
            return (await self._loaded()).height

    async def count_unsynced(self) -> int:
        async with self._lock:
            return (await self._loaded()).filter(~pl.col("synced")).height


def _to_row(record_id: str, sample: LocationSample) -> dict[str, Any]:
    return {
        "record_id": record_id,
        "timestamp": sample.timestamp.astimezone(timezone.utc),
        "latitude": sample.latitude,
        "longitude": sample.longitude,
        "accuracy": sample.accuracy,
        "altitude": sample.altitude,
        "speed": sample.speed,
        "bearing": sample.bearing,
        "provider": sample.provider,
        "synced": False,
    }


def _to_stored(row: dict[str, Any]) -> StoredSample:
    timestamp = row["timestamp"]
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)

    return StoredSample(
        record_id=row["record_id"],
        sample=LocationSample(
            latitude=row["latitude"],
            longitude=row["longitude"],
            accuracy=row["accuracy"],
            altitude=row["altitude"],
            speed=row["speed"],
            bearing=row["bearing"],
            timestamp=timestamp,
            provider=row["provider"],
        ),
        synced=bool(row["synced"]),
    )
