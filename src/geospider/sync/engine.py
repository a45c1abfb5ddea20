"""
Batched sync of buffered samples to the remote endpoint.

Unsynced samples are sorted by timestamp, split into batches of at most
sync_batch_size and sent in order. The first batch that is not delivered
stops the run; batches delivered before it are already marked synced, so a
retry resumes where the last run stopped. Delivery is at-least-once: a batch
whose delivery succeeded but whose mark failed is sent again next time.
"""

import asyncio
import logging

from geospider.config.settings import RuntimeConfig
from geospider.errors import GeoSpiderError
from geospider.models import SyncBatch, SyncOutcome, partition_batches
from geospider.storage.base import OfflineStore
from geospider.sync.connectivity import ConnectivityProbe
from geospider.sync.transport import Transport
from geospider.utils.logging import log_error, log_status


class SyncEngine:
    """Moves unsynced samples from the offline store to the remote endpoint."""

    def __init__(
        self,
        store: OfflineStore,
        transport: Transport,
        connectivity: ConnectivityProbe,
        config: RuntimeConfig,
        logger: logging.Logger,
    ):
        self.store = store
        self.transport = transport
        self.connectivity = connectivity
        self.config = config
        self.logger = logger
        self._lock = asyncio.Lock()

    async def sync_once(self) -> SyncOutcome:
        """
        Run one sync pass.

        Never raises: every failure is reported through the returned outcome.
        Concurrent calls on the same engine run one after another.

        Returns:
            SyncOutcome with the number of samples delivered in this pass
        """
        async with self._lock:
            synced_count = 0
            try:
                # is_online() may block on a TCP connect
                if not await asyncio.to_thread(self.connectivity.is_online):
                    self.logger.info("Offline - skipping sync, will retry next interval")
                    return SyncOutcome.succeeded(0)

                pending = await self.store.list_unsynced()
                if not pending:
                    self.logger.debug("Nothing to sync")
                    return SyncOutcome.succeeded(0)

                batches = partition_batches(pending, self.config.sync_batch_size)
                self.logger.debug(f"Syncing {len(pending)} samples in {len(batches)} batches")

                for batch in batches:
                    if not await self._sync_batch(batch):
                        message = f"Failed to sync batch containing {len(batch)} items"
                        self.logger.warning(f"{message} ({synced_count} synced before it)")
                        return SyncOutcome.failed(synced_count, message)
                    synced_count += len(batch)

            except Exception as e:
                log_error(e, self.logger, f"Sync failed after {synced_count} samples")
                return SyncOutcome.failed(synced_count, f"Sync operation failed: {e}")

            log_status(
                f"Synced {synced_count} samples to {self.config.server_url}", self.logger, "SYNC"
            )
            return SyncOutcome.succeeded(synced_count)

    async def _sync_batch(self, batch: SyncBatch) -> bool:
        """Send one batch and mark it synced. Any failure means "not delivered"."""
        try:
            delivered = await self.transport.send(self.config.server_url, batch.to_payload())
            if not delivered:
                return False
            await self.store.mark_synced(batch.record_ids)
            return True
        except GeoSpiderError as e:
            self.logger.warning(f"Batch of {len(batch)} samples not synced: {e}")
            return False
        except Exception as e:
            log_error(e, self.logger, f"Unexpected error syncing batch of {len(batch)} samples")
            return False

    async def run_periodic(self, interval: float, stop_event: asyncio.Event) -> None:
        """
        Call sync_once() every interval seconds until stop_event is set.

        The first pass runs immediately. Outcomes are logged, never raised.
        """
        log_status(
            f"Auto-sync every {interval:.0f}s to {self.config.server_url}", self.logger, "SYNC"
        )
        while not stop_event.is_set():
            outcome = await self.sync_once()
            if not outcome.success:
                self.logger.warning(
                    f"Sync incomplete: {outcome.error} ({outcome.synced_count} synced)"
                )

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
