"""
Background location collector.

One asyncio task per running scheduler samples the location gateway, appends
valid readings to the offline store and evicts samples older than the
retention window. A failed cycle is logged and recorded; only stop() ends
the loop.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from geospider.config.settings import RuntimeConfig
from geospider.errors import GeoSpiderError, ServiceUnavailable
from geospider.location.gateway import LocationGateway
from geospider.storage.base import OfflineStore
from geospider.utils.logging import log_error, log_status

STOP_GRACE_PERIOD = 5.0


@dataclass
class StepResult:
    """Outcome of one step of a collection cycle."""

    step: str
    ok: bool
    value: Any = None
    error: Exception | None = None


@dataclass
class CycleReport:
    """Outcome of one full collection cycle."""

    started_at: datetime
    steps: list[StepResult] = field(default_factory=list)

    @property
    def collected(self) -> bool:
        return any(s.step == "store" and s.ok for s in self.steps)

    @property
    def evicted(self) -> int:
        return sum(s.value or 0 for s in self.steps if s.step == "cleanup" and s.ok)

    @property
    def errors(self) -> list[Exception]:
        return [s.error for s in self.steps if s.error is not None]


class CollectionScheduler:
    """
    Periodic collection loop with a Stopped -> Running -> Stopped lifecycle.

    start() and stop() are the only coordination points with the loop.
    Cancellation is cooperative: stop() sets an event that the loop checks
    at the top of each iteration and while sleeping.
    """

    def __init__(
        self,
        gateway: LocationGateway,
        store: OfflineStore,
        config: RuntimeConfig,
        logger: logging.Logger,
        stop_grace_period: float = STOP_GRACE_PERIOD,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.gateway = gateway
        self.store = store
        self.config = config
        self.logger = logger
        self.stop_grace_period = stop_grace_period
        self.clock = clock

        self.interval = config.collection_interval_seconds
        self.retention = timedelta(days=config.max_offline_storage_days)

        self._running = False
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task | None = None
        self.cycles_count = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def stored_count(self) -> int:
        """Number of samples currently held by the offline store."""
        return await self.store.count()

    async def start(self) -> None:
        """
        Start background collection. No-op if already running.

        Raises:
            ServiceUnavailable: if the location source is disabled
        """
        if self._running:
            return

        if not await asyncio.to_thread(self.gateway.is_enabled):
            raise ServiceUnavailable("Location services are not enabled")

        self._stop_event = asyncio.Event()
        self._running = True
        self._task = asyncio.create_task(
            self._run(self._stop_event), name="geospider-collection-loop"
        )
        log_status(
            f"Collection started: {self.interval}s interval, "
            f"{self.config.max_offline_storage_days} day retention",
            self.logger,
            "COLLECT",
        )

    async def stop(self) -> None:
        """
        Stop background collection. No-op if already stopped.

        Waits up to stop_grace_period for the in-flight cycle, then abandons
        the task. The scheduler reports Stopped either way.
        """
        if not self._running:
            return

        task = self._task
        if self._stop_event is not None:
            self._stop_event.set()

        try:
            if task is not None:
                await asyncio.wait_for(asyncio.shield(task), timeout=self.stop_grace_period)
        except asyncio.TimeoutError:
            self.logger.warning(
                f"Collection loop did not finish within {self.stop_grace_period:.0f}s, abandoning it"
            )
            task.cancel()
        except Exception as e:
            log_error(e, self.logger, "Collection loop ended with an error")
        finally:
            self._running = False
            self._task = None
            self._stop_event = None

        log_status(f"Collection stopped after {self.cycles_count} cycles", self.logger, "COLLECT")

    async def _run(self, stop_event: asyncio.Event) -> None:
        """Main collection loop."""
        while not stop_event.is_set():
            await self.run_cycle()

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue

    async def run_cycle(self) -> CycleReport:
        """
        Run one collection cycle: read, validate and store, then evict old samples.

        Every step runs behind its own error boundary, so this never raises.
        """
        report = CycleReport(started_at=self.clock())
        self.cycles_count += 1

        reading = await self._run_step("read", self.gateway.get_current_reading)
        report.steps.append(reading)

        if reading.ok:
            sample = reading.value

            async def validate_and_append() -> str:
                sample.validate()
                return await self.store.append(sample)

            stored = await self._run_step("store", validate_and_append)
            report.steps.append(stored)
            if stored.ok:
                self.logger.debug(
                    f"Stored sample {sample.latitude:.6f}, {sample.longitude:.6f} "
                    f"({sample.provider})"
                )

        cutoff = self.clock() - self.retention
        cleanup = await self._run_step("cleanup", lambda: self.store.delete_older_than(cutoff))
        report.steps.append(cleanup)
        if cleanup.ok and cleanup.value:
            log_status(
                f"Evicted {cleanup.value} samples older than {cutoff:%Y-%m-%d %H:%M} UTC",
                self.logger,
                "CLEANUP",
            )

        if report.errors:
            self.logger.debug(
                f"Cycle {self.cycles_count} started {report.started_at:%H:%M:%S} UTC "
                f"finished with {len(report.errors)} errors"
            )
        return report

    async def _run_step(self, step: str, action: Callable[[], Awaitable[Any]]) -> StepResult:
        try:
            return StepResult(step=step, ok=True, value=await action())
        except GeoSpiderError as e:
            self.logger.warning(f"Collection step '{step}' failed: {e}")
            return StepResult(step=step, ok=False, error=e)
        except Exception as e:
            log_error(e, self.logger, f"Unexpected error in collection step '{step}'")
            return StepResult(step=step, ok=False, error=e)
