"""
In-memory offline store. Nothing survives a restart; used for demos and tests.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime

from geospider.models import LocationSample, StoredSample
from geospider.utils.uuid_gen import generate_record_id


class InMemoryOfflineStore:
    """List-backed store serialized by an asyncio lock."""

    def __init__(self) -> None:
        self._records: list[StoredSample] = []
        self._lock = asyncio.Lock()

    async def append(self, sample: LocationSample) -> str:
        sample.validate()
        record = StoredSample(record_id=generate_record_id(), sample=sample)
        async with self._lock:
            self._records.append(record)
        return record.record_id

    async def list_unsynced(self) -> list[StoredSample]:
        async with self._lock:
            pending = [r for r in self._records if not r.synced]
        return sorted(pending, key=lambda r: r.sample.timestamp)

    async def list_all(self) -> list[StoredSample]:
        async with self._lock:
            records = list(self._records)
        return sorted(records, key=lambda r: r.sample.timestamp)

    async def mark_synced(self, record_ids: Sequence[str]) -> None:
        ids = set(record_ids)
        if not ids:
            return
        async with self._lock:
            self._records = [
                replace(r, synced=True) if r.record_id in ids else r for r in self._records
            ]

    async def delete_older_than(self, cutoff: datetime) -> int:
        async with self._lock:
            before = len(self._records)
            self._records = [r for r in self._records if r.sample.timestamp >= cutoff]
            return before - len(self._records)

    async def delete_synced(self) -> int:
        async with self._lock:
            before = len(self._records)
            self._records = [r for r in self._records if not r.synced]
            return before - len(self._records)

    async def count(self) -> int:
        async with self._lock:
            return len(self._records)

    async def count_unsynced(self) -> int:
        async with self._lock:
            return sum(1 for r in self._records if not r.synced)
