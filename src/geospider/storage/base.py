"""
Offline store contract.

Implementations must serialize their own operations: append, mark_synced and
delete are atomic, and a retention delete composed with a sync mark never
resurrects or double-deletes a record.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from geospider.models import LocationSample, StoredSample


class OfflineStore(Protocol):
    """Append-only sample buffer with sync marking and age-based eviction."""

    async def append(self, sample: LocationSample) -> str:
        """Validate and store a sample as unsynced. Returns its record id."""
        ...

    async def list_unsynced(self) -> list[StoredSample]:
        """Unsynced records in ascending timestamp order."""
        ...

    async def mark_synced(self, record_ids: Sequence[str]) -> None:
        """Mark all given records synced in one atomic step. Unknown ids are ignored."""
        ...

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete records with a timestamp before cutoff, synced or not."""
        ...

    async def count(self) -> int:
        """Number of stored records."""
        ...

    async def count_unsynced(self) -> int: ...

    async def list_all(self) -> list[StoredSample]: ...

    async def delete_synced(self) -> int: ...
