"""Retention service: bounded, chunked removal of old snapshots."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sysinsight.errors import StorageError
from sysinsight.monitoring import metrics
from sysinsight.observability import add_span_attributes, add_span_event, trace_operation

if TYPE_CHECKING:
    from sysinsight.storage.history_store import HistoryStore

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 90
DEFAULT_CHUNK_SIZE = 1000


@dataclass
class RetentionStats:
    """Statistics for a retention trim pass."""

    rows_deleted: int = 0
    chunks: int = 0
    cutoff: datetime | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    interrupted: bool = False


class RetentionService:
    """Removes snapshots older than the retention horizon, one chunk at a time.

    Each chunk is its own transaction under the store lock. Between chunks the
    service yields to the event loop and honours ``stop()``, so an interrupted
    pass leaves the store trimmed up to some prefix and nothing half-deleted.
    """

    def __init__(
        self,
        store: HistoryStore,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize retention service.

        Args:
            store: History store to trim
            retention_days: Default horizon in days
            chunk_size: Maximum rows deleted per transaction
            clock: Returns the current UTC time (injectable for tests)
        """
        if retention_days <= 0:
            raise ValueError(f"retention_days must be positive, got {retention_days}")
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")

        self.store = store
        self.retention_days = retention_days
        self.chunk_size = chunk_size
        self._clock = clock or (lambda: datetime.now(UTC))
        self._stop_event = asyncio.Event()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def trim(self, retention_days: int | None = None) -> RetentionStats:
        """Delete snapshots older than ``now - retention_days``.

        Args:
            retention_days: Override of the configured horizon

        Returns:
            Retention statistics

        Raises:
            StorageError: If a chunk fails; earlier chunks stay committed
        """
        days = retention_days if retention_days is not None else self.retention_days
        start_time = self._clock()
        cutoff = start_time - timedelta(days=days)
        stats = RetentionStats(cutoff=cutoff, start_time=start_time)

        logger.info(f"Starting retention trim for snapshots older than {cutoff.isoformat()}")

        with trace_operation("retention.trim", {"retention_days": str(days)}):
            with metrics.retention_duration_seconds.time():
                while True:
                    if self._stop_event.is_set():
                        stats.interrupted = True
                        add_span_event("retention.interrupted", {"rows_deleted": str(stats.rows_deleted)})
                        logger.info("Retention trim stopped between chunks")
                        break

                    deleted = await self.store.trim_chunk(cutoff, self.chunk_size)
                    if deleted == 0:
                        break

                    stats.rows_deleted += deleted
                    stats.chunks += 1
                    metrics.retention_rows_trimmed_total.inc(deleted)

                    if stats.chunks % 10 == 0:
                        logger.info(f"Retention progress: {stats.rows_deleted} rows in {stats.chunks} chunks")

                    await asyncio.sleep(0)

            add_span_attributes({"retention.rows_deleted": stats.rows_deleted})

        stats.end_time = self._clock()
        logger.info(
            f"Retention trim complete: {stats.rows_deleted} snapshots removed "
            f"in {stats.chunks} chunks"
        )
        return stats

    async def run(self, interval_seconds: float = 3600.0) -> None:
        """Trim periodically until ``stop()`` is called.

        A stop requested before the loop starts is honoured: the loop exits
        without a pass.

        Args:
            interval_seconds: Delay between trim passes
        """
        self._running = True
        logger.info(f"Retention service started (every {interval_seconds}s)")

        try:
            while not self._stop_event.is_set():
                try:
                    await self.trim()
                except StorageError as e:
                    logger.error(f"Retention pass failed: {e}", exc_info=True)

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval_seconds)
                except TimeoutError:
                    continue
        finally:
            self._running = False
            logger.info("Retention service stopped")

    def stop(self) -> None:
        """Request the loop or trim pass to stop at the next chunk boundary.

        The request is final for this service instance.
        """
        self._stop_event.set()
