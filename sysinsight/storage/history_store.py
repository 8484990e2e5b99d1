"""History store: append-only DuckDB time series of snapshots."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import duckdb

from sysinsight.errors import StorageError
from sysinsight.models import Snapshot
from sysinsight.monitoring import metrics
from sysinsight.observability import add_span_attributes, traced
from sysinsight.storage.models import (
    DailyMetrics,
    HistoryStats,
    HourlyMetrics,
    UsageSummary,
)

logger = logging.getLogger(__name__)

HOUR_SECONDS: Final = 3600
DAY_SECONDS: Final = 86400

# Snapshot fields stored one column each, in table order.
_METRIC_COLUMNS: Final[tuple[tuple[str, str], ...]] = (
    ("cpu_usage_percent", "DOUBLE"),
    ("cpu_performance_core_percent", "DOUBLE"),
    ("cpu_efficiency_core_percent", "DOUBLE"),
    ("cpu_temperature_c", "DOUBLE"),
    ("gpu_usage_percent", "DOUBLE"),
    ("gpu_temperature_c", "DOUBLE"),
    ("memory_total_bytes", "BIGINT"),
    ("memory_used_bytes", "BIGINT"),
    ("memory_wired_bytes", "BIGINT"),
    ("memory_compressed_bytes", "BIGINT"),
    ("swap_used_bytes", "BIGINT"),
    ("disk_read_bytes_per_sec", "DOUBLE"),
    ("disk_write_bytes_per_sec", "DOUBLE"),
    ("network_in_bytes_per_sec", "DOUBLE"),
    ("network_out_bytes_per_sec", "DOUBLE"),
    ("fan_rpm", "BIGINT"),
    ("thermal_state", "VARCHAR"),
    ("active_process_count", "BIGINT"),
    ("top_processes", "VARCHAR"),
)

_COLUMN_NAMES: Final = ("ts",) + tuple(name for name, _ in _METRIC_COLUMNS)
_SELECT_COLUMNS: Final = ", ".join(_COLUMN_NAMES)

_BUCKET_QUERY: Final = """
    SELECT
        floor(ts / {period}) * {period} AS bucket,
        avg(cpu_usage_percent),
        avg(memory_used_bytes),
        avg(CASE WHEN memory_total_bytes > 0
                 THEN memory_used_bytes * 100.0 / memory_total_bytes END),
        avg(gpu_usage_percent),
        avg(cpu_temperature_c),
        max(cpu_usage_percent),
        max(memory_used_bytes),
        max(cpu_temperature_c),
        count(*)
    FROM snapshots
    WHERE ts >= ? AND ts < ?
    GROUP BY bucket
    ORDER BY bucket
"""

_SUMMARY_QUERY: Final = """
    SELECT
        count(*),
        avg(cpu_usage_percent), max(cpu_usage_percent), min(cpu_usage_percent),
        avg(memory_used_bytes), max(memory_used_bytes),
        avg(gpu_usage_percent), max(gpu_usage_percent),
        avg(cpu_temperature_c), max(cpu_temperature_c)
    FROM snapshots
    WHERE ts >= ? AND ts < ?
"""

_TRIM_SELECTION: Final = """
    SELECT id FROM snapshots
    WHERE ts < ?
    ORDER BY ts, id
    LIMIT {limit}
"""


def _epoch(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.timestamp()


def _from_epoch(value: float) -> datetime:
    return datetime.fromtimestamp(value, UTC)


def _float_or_none(value: Any) -> float | None:
    return None if value is None else float(value)


class HistoryStore:
    """Durable, queryable time series of snapshots backed by DuckDB.

    All operations are serialized through one ``asyncio.Lock`` and run their
    DuckDB work in a worker thread, so a reader observes the table either
    before or after any append or trim chunk, never in between.
    """

    def __init__(self, database_path: str | Path = ":memory:") -> None:
        """Initialize history store.

        Args:
            database_path: DuckDB database path (":memory:" for in-memory)
        """
        self.db_path = database_path
        self.conn: duckdb.DuckDBPyConnection | None = None
        self._lock = asyncio.Lock()

        placeholders = ", ".join("?" for _ in _COLUMN_NAMES)
        self._insert_sql = f"INSERT INTO snapshots ({_SELECT_COLUMNS}) VALUES ({placeholders})"

    @property
    def is_available(self) -> bool:
        return self.conn is not None

    async def initialize(self) -> None:
        """Open the database and create the schema.

        Raises:
            StorageError: If the database cannot be opened
        """
        async with self._lock:
            try:
                self.conn = await asyncio.to_thread(self._connect)
            except (duckdb.Error, OSError) as e:
                logger.error(f"Failed to open history store at {self.db_path}: {e}")
                raise StorageError(f"Cannot open history store: {e}") from e

            logger.info(f"History store initialized: {self.db_path}")

    def _connect(self) -> duckdb.DuckDBPyConnection:
        if str(self.db_path) != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        conn = duckdb.connect(str(self.db_path))
        columns = ",\n".join(f"{name} {sql_type}" for name, sql_type in _METRIC_COLUMNS)
        conn.execute("CREATE SEQUENCE IF NOT EXISTS snapshots_id_seq START 1")
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS snapshots (
                id BIGINT DEFAULT nextval('snapshots_id_seq'),
                ts DOUBLE NOT NULL,
                {columns}
            )
        """)
        return conn

    async def close(self) -> None:
        """Close database connection."""
        async with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None
                logger.info("History store closed")

    @staticmethod
    def _to_row(snapshot: Snapshot) -> list[Any]:
        row: list[Any] = [_epoch(snapshot.timestamp)]
        for name, _ in _METRIC_COLUMNS:
            value = getattr(snapshot, name)
            if name == "thermal_state":
                value = value.value if value is not None else None
            elif name == "top_processes":
                value = json.dumps(list(value)) if value else None
            row.append(value)
        return row

    @staticmethod
    def _from_row(row: Sequence[Any]) -> Snapshot:
        fields: dict[str, Any] = {"timestamp": _from_epoch(row[0])}
        for (name, _), value in zip(_METRIC_COLUMNS, row[1:], strict=True):
            if value is None:
                continue
            if name == "top_processes":
                value = tuple(json.loads(value))
            fields[name] = value
        return Snapshot(**fields)

    async def record(self, snapshot: Snapshot) -> None:
        """Append a snapshot.

        The snapshot is dropped, not retried, when persistence fails.

        Args:
            snapshot: Snapshot to persist

        Raises:
            StorageError: If the store is unavailable or the write fails
        """
        async with self._lock:
            if not self.conn:
                metrics.snapshots_dropped_total.labels(reason="unavailable").inc()
                logger.error("History store not initialized, dropping snapshot")
                raise StorageError("History store not initialized")

            try:
                await asyncio.to_thread(self.conn.execute, self._insert_sql, self._to_row(snapshot))
            except duckdb.Error as e:
                metrics.snapshots_dropped_total.labels(reason="write_failed").inc()
                logger.error(f"Failed to record snapshot at {snapshot.timestamp.isoformat()}: {e}")
                raise StorageError(f"Failed to record snapshot: {e}") from e

        metrics.snapshots_recorded_total.inc()

    async def _fetch(self, query_type: str, sql: str, params: list[Any]) -> list[tuple[Any, ...]]:
        """Run a read query under the store lock.

        Returns an empty list when the store is unavailable or the query fails.
        """
        async with self._lock:
            conn = self.conn
            if conn is None:
                logger.warning(f"History store not initialized, {query_type} returns no data")
                return []

            def run() -> list[tuple[Any, ...]]:
                return conn.execute(sql, params).fetchall()

            try:
                with metrics.history_query_duration_seconds.labels(query_type=query_type).time():
                    return await asyncio.to_thread(run)
            except duckdb.Error as e:
                metrics.history_query_errors_total.labels(query_type=query_type).inc()
                logger.error(f"History query '{query_type}' failed: {e}")
                return []

    async def get_snapshots(self, start: datetime, end: datetime) -> list[Snapshot]:
        """Raw snapshots with timestamp in ``[start, end)``, oldest first."""
        rows = await self._fetch(
            "snapshots",
            f"""
            SELECT {_SELECT_COLUMNS} FROM snapshots
            WHERE ts >= ? AND ts < ?
            ORDER BY ts, id
            """,
            [_epoch(start), _epoch(end)],
        )
        return [self._from_row(row) for row in rows]

    async def latest(self, limit: int = 1) -> list[Snapshot]:
        """The most recent ``limit`` snapshots, oldest first."""
        if limit <= 0:
            return []
        rows = await self._fetch(
            "latest",
            f"""
            SELECT {_SELECT_COLUMNS} FROM (
                SELECT * FROM snapshots ORDER BY ts DESC, id DESC LIMIT {int(limit)}
            ) ORDER BY ts, id
            """,
            [],
        )
        return [self._from_row(row) for row in rows]

    async def _bucket_rows(
        self, query_type: str, period_seconds: int, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        rows = await self._fetch(
            query_type,
            _BUCKET_QUERY.format(period=int(period_seconds)),
            [_epoch(start), _epoch(end)],
        )
        return [
            {
                "bucket_start": _from_epoch(row[0]),
                "avg_cpu": _float_or_none(row[1]),
                "avg_memory": _float_or_none(row[2]),
                "avg_memory_percent": _float_or_none(row[3]),
                "avg_gpu": _float_or_none(row[4]),
                "avg_temperature": _float_or_none(row[5]),
                "max_cpu": _float_or_none(row[6]),
                "max_memory": _float_or_none(row[7]),
                "max_temperature": _float_or_none(row[8]),
                "sample_count": int(row[9]),
            }
            for row in rows
        ]

    @traced("history.hourly_averages")
    async def hourly_averages(self, start: datetime, end: datetime) -> list[HourlyMetrics]:
        """Hour-aligned averages over ``[start, end)``.

        Buckets without samples are omitted, so the result may be sparse.

        Args:
            start: Inclusive range start
            end: Exclusive range end

        Returns:
            One HourlyMetrics per hour that holds at least one snapshot
        """
        rows = await self._bucket_rows("hourly", HOUR_SECONDS, start, end)
        add_span_attributes({"history.buckets": len(rows)})
        return [HourlyMetrics(**row) for row in rows]

    @traced("history.daily_averages")
    async def daily_averages(self, start: datetime, end: datetime) -> list[DailyMetrics]:
        """Day-aligned (UTC) averages over ``[start, end)``, empty days omitted."""
        rows = await self._bucket_rows("daily", DAY_SECONDS, start, end)
        add_span_attributes({"history.buckets": len(rows)})
        return [DailyMetrics(**row) for row in rows]

    @traced("history.summarize")
    async def summarize(self, start: datetime, end: datetime) -> UsageSummary:
        """Mean, max and min statistics over ``[start, end)``.

        Returns:
            UsageSummary; ``UsageSummary.empty`` when the range holds no snapshots
        """
        rows = await self._fetch("summary", _SUMMARY_QUERY, [_epoch(start), _epoch(end)])
        if not rows or not rows[0][0]:
            return UsageSummary.empty(start, end)

        row = rows[0]
        values = [float(v) if v is not None else 0.0 for v in row[1:]]
        return UsageSummary(
            start=start,
            end=end,
            sample_count=int(row[0]),
            avg_cpu=values[0],
            max_cpu=values[1],
            min_cpu=values[2],
            avg_memory=values[3],
            max_memory=values[4],
            avg_gpu=values[5],
            max_gpu=values[6],
            avg_temperature=values[7],
            max_temperature=values[8],
        )

    async def total_snapshot_count(self) -> int:
        """Number of stored snapshots. Non-decreasing until a retention trim."""
        rows = await self._fetch("count", "SELECT count(*) FROM snapshots", [])
        count = int(rows[0][0]) if rows else 0
        metrics.history_snapshot_count.set(count)
        return count

    async def stats(self) -> HistoryStats:
        """Snapshot count and the time span covered."""
        rows = await self._fetch(
            "stats", "SELECT count(*), min(ts), max(ts) FROM snapshots", []
        )
        if not rows or not rows[0][0]:
            return HistoryStats()

        total, oldest, newest = rows[0]
        return HistoryStats(
            total_snapshots=int(total),
            oldest=_from_epoch(oldest),
            newest=_from_epoch(newest),
        )

    async def trim_chunk(self, cutoff: datetime, chunk_size: int) -> int:
        """Delete up to ``chunk_size`` of the oldest snapshots older than ``cutoff``.

        The chunk is deleted in one transaction while holding the store lock.

        Args:
            cutoff: Snapshots with timestamp strictly before this are eligible
            chunk_size: Maximum rows to delete

        Returns:
            Number of rows deleted

        Raises:
            StorageError: If the store is unavailable or the delete fails
        """
        async with self._lock:
            conn = self.conn
            if conn is None:
                raise StorageError("History store not initialized")

            params = [_epoch(cutoff)]
            selection = _TRIM_SELECTION.format(limit=int(chunk_size))

            def run() -> int:
                conn.execute("BEGIN TRANSACTION")
                try:
                    result = conn.execute(
                        f"SELECT count(*) FROM ({selection})", params
                    ).fetchone()
                    deleted = int(result[0]) if result else 0
                    if deleted:
                        conn.execute(f"DELETE FROM snapshots WHERE id IN ({selection})", params)
                    conn.execute("COMMIT")
                except duckdb.Error:
                    conn.execute("ROLLBACK")
                    raise
                return deleted

            try:
                deleted = await asyncio.to_thread(run)
            except duckdb.Error as e:
                logger.error(f"Retention chunk failed (cutoff={cutoff.isoformat()}): {e}")
                raise StorageError(f"Retention trim failed: {e}") from e

        if deleted:
            logger.debug(f"Trimmed {deleted} snapshots older than {cutoff.isoformat()}")
        return deleted
