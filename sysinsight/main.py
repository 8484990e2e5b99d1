"""sysinsight application wiring and lifecycle."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from sysinsight.config import SysInsightConfig
from sysinsight.errors import StorageError
from sysinsight.insights.engine import InsightEngine
from sysinsight.models import Insight, InsightState, Snapshot
from sysinsight.observability import setup_telemetry, shutdown_telemetry
from sysinsight.processing.trends import TrendAnalyzer
from sysinsight.storage.history_store import HistoryStore
from sysinsight.storage.retention import RetentionService

logger = logging.getLogger(__name__)


class InsightApplication:
    """Owns the single history store, trend analyzer and insight engine.

    Components are constructed once and passed by reference; nothing is
    shared through module-level state.

    Attributes:
        config: Loaded configuration
        store: Snapshot history
        retention: Background retention trim
        analyzer: Trend analysis over the history
        engine: Live insight evaluation
        shutdown_event: Event for graceful shutdown
    """

    def __init__(
        self,
        config: SysInsightConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize application.

        Args:
            config: Configuration (loaded from env when omitted)
            clock: Returns the current UTC time (injectable for tests)
        """
        self.config = config or SysInsightConfig()
        self.store = HistoryStore(database_path=self.config.storage.path or ":memory:")
        self.retention = RetentionService(
            self.store,
            retention_days=self.config.storage.retention_days,
            chunk_size=self.config.storage.trim_chunk_size,
            clock=clock,
        )
        self.analyzer = TrendAnalyzer(self.store, self.config.analysis, clock=clock)
        self.engine = InsightEngine(self.config.thresholds, self.config.engine)
        self.shutdown_event = asyncio.Event()
        self._tasks: list[asyncio.Task[Any]] = []

    async def initialize(self) -> None:
        """Open storage. A failure leaves the app running without history."""
        try:
            await self.store.initialize()
        except StorageError as e:
            logger.error(f"History unavailable, continuing without persistence: {e}")

    async def ingest(self, snapshot: Snapshot, signals: Iterable[Insight] = ()) -> InsightState:
        """Record a snapshot, then evaluate it.

        Persistence failures are logged and do not stop evaluation.

        Args:
            snapshot: Snapshot from the collector
            signals: Extra insights from external detectors

        Returns:
            Engine state after evaluation
        """
        try:
            await self.store.record(snapshot)
        except StorageError as e:
            logger.warning(f"Snapshot not persisted: {e}")

        return await self.engine.evaluate(snapshot, signals)

    async def run_analysis(self) -> bool:
        """Run one trend analysis pass and refresh trend-derived insights."""
        ran = await self.analyzer.analyze()
        if ran:
            self.engine.update_trend_insights(
                self.analyzer.memory_leak_suspects,
                self.analyzer.anomalies,
            )
        return ran

    async def _analysis_loop(self, interval_seconds: float) -> None:
        logger.info(f"Analysis loop started (every {interval_seconds}s)")
        while not self.shutdown_event.is_set():
            try:
                await self.run_analysis()
            except Exception as e:
                logger.error(f"Analysis pass failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self.shutdown_event.wait(), timeout=interval_seconds)
            except TimeoutError:
                continue
        logger.info("Analysis loop stopped")

    def start_background_tasks(self) -> None:
        """Start the retention and analysis loops on the running event loop."""
        self._tasks = [
            asyncio.create_task(
                self.retention.run(self.config.storage.retention_interval_seconds),
                name="sysinsight-retention",
            ),
            asyncio.create_task(
                self._analysis_loop(self.config.analysis.analysis_interval_seconds),
                name="sysinsight-analysis",
            ),
        ]

    async def start(self) -> None:
        """Start services and wait until shutdown is requested."""
        logger.info("Starting sysinsight application")
        if self.config.debug:
            logging.getLogger().setLevel(logging.DEBUG)
        setup_telemetry(
            environment=self.config.environment,
            enable_console_export=self.config.console_tracing,
        )
        await self.initialize()

        logger.info("Setting up signal handlers for graceful shutdown")
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)

        self.start_background_tasks()
        logger.info(f"sysinsight started, history at {self.store.db_path}")

        try:
            await self.shutdown_event.wait()
        except asyncio.CancelledError:
            logger.info("Application cancelled")
        finally:
            await self.stop()
            shutdown_telemetry()

    def _handle_shutdown(self, signum: int, _frame: Any = None) -> None:
        """Handle shutdown signal.

        Args:
            signum: Signal number (SIGINT or SIGTERM)
            _frame: Current stack frame (unused)
        """
        signal_name = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
        logger.info(f"Received {signal_name} signal, initiating graceful shutdown")
        self.shutdown_event.set()

    async def stop(self, timeout: float = 10.0) -> None:
        """Stop background loops and close storage.

        A retention pass in progress stops at its next chunk boundary.
        """
        logger.info("Initiating graceful shutdown")
        self.shutdown_event.set()
        self.retention.stop()

        if self._tasks:
            _done, pending = await asyncio.wait(self._tasks, timeout=timeout)
            for task in pending:
                logger.warning(f"Cancelling {task.get_name()} after {timeout}s")
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            self._tasks = []

        await self.store.close()
        logger.info("sysinsight shutdown complete")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(InsightApplication().start())
