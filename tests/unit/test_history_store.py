"""Tests for the DuckDB history store."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from sysinsight.errors import StorageError
from sysinsight.models import Snapshot, ThermalState
from sysinsight.storage.history_store import HistoryStore
from sysinsight.storage.retention import RetentionService

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)

GB = 1024**3


class TestHistoryStore:
    """Test suite for HistoryStore."""

    @pytest.mark.asyncio
    async def test_initialization(self, store: HistoryStore) -> None:
        """Test the snapshots table is created."""
        assert store.is_available
        result = store.conn.execute(
            "SELECT table_name FROM information_schema.tables WHERE table_name = 'snapshots'"
        ).fetchone()
        assert result is not None

    @pytest.mark.asyncio
    async def test_record_and_read_back(self, store: HistoryStore) -> None:
        """Test all fields survive a write and read."""
        snapshot = Snapshot(
            timestamp=NOW,
            cpu_usage_percent=42.5,
            cpu_temperature_c=61.0,
            memory_total_bytes=16 * GB,
            memory_used_bytes=9 * GB,
            disk_read_bytes_per_sec=1024.0,
            fan_rpm=1800,
            thermal_state=ThermalState.FAIR,
            top_processes=("Xcode", "Safari"),
        )
        await store.record(snapshot)

        rows = await store.get_snapshots(NOW - timedelta(minutes=1), NOW + timedelta(minutes=1))

        assert rows == [snapshot]
        assert rows[0].gpu_usage_percent is None
        assert rows[0].thermal_state is ThermalState.FAIR

    @pytest.mark.asyncio
    async def test_get_snapshots_half_open_range(self, store: HistoryStore, make_snapshot) -> None:
        """Test the range includes start and excludes end."""
        for minutes in (0, 5, 10):
            await store.record(make_snapshot(NOW + timedelta(minutes=minutes), cpu_usage_percent=10.0))

        rows = await store.get_snapshots(NOW, NOW + timedelta(minutes=10))

        assert [r.timestamp for r in rows] == [NOW, NOW + timedelta(minutes=5)]

    @pytest.mark.asyncio
    async def test_get_snapshots_oldest_first(self, store: HistoryStore, make_snapshot) -> None:
        """Test out-of-order appends are returned in timestamp order."""
        await store.record(make_snapshot(NOW + timedelta(minutes=2), cpu_usage_percent=2.0))
        await store.record(make_snapshot(NOW, cpu_usage_percent=1.0))

        rows = await store.get_snapshots(NOW - timedelta(hours=1), NOW + timedelta(hours=1))

        assert [r.cpu_usage_percent for r in rows] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_latest(self, store: HistoryStore, make_snapshot) -> None:
        """Test latest returns the newest snapshots, oldest first."""
        for i in range(5):
            await store.record(make_snapshot(NOW + timedelta(seconds=i), cpu_usage_percent=float(i)))

        latest = await store.latest(3)

        assert [s.cpu_usage_percent for s in latest] == [2.0, 3.0, 4.0]
        assert await store.latest(0) == []

    @pytest.mark.asyncio
    async def test_naive_timestamp_stored_as_utc(self, store: HistoryStore) -> None:
        """Test a naive timestamp is interpreted as UTC."""
        await store.record(Snapshot(timestamp=datetime(2026, 3, 2, 12, 0), cpu_usage_percent=5.0))

        rows = await store.get_snapshots(NOW, NOW + timedelta(seconds=1))

        assert len(rows) == 1
        assert rows[0].timestamp == NOW

    @pytest.mark.asyncio
    async def test_record_without_initialize_raises(self, make_snapshot) -> None:
        """Test recording into an unopened store fails loudly."""
        store = HistoryStore(database_path=":memory:")

        with pytest.raises(StorageError):
            await store.record(make_snapshot(cpu_usage_percent=10.0))

    @pytest.mark.asyncio
    async def test_reads_without_initialize_return_empty(self) -> None:
        """Test reads on an unavailable store return empty results."""
        store = HistoryStore(database_path=":memory:")

        assert await store.get_snapshots(NOW - timedelta(days=1), NOW) == []
        assert await store.hourly_averages(NOW - timedelta(days=1), NOW) == []
        assert (await store.summarize(NOW - timedelta(days=1), NOW)).is_empty
        assert await store.total_snapshot_count() == 0

    @pytest.mark.asyncio
    async def test_hourly_averages(self, store: HistoryStore, make_snapshot) -> None:
        """Test hourly buckets average their snapshots and skip empty hours."""
        base = NOW.replace(hour=10)
        for minutes, cpu in ((0, 10.0), (20, 20.0), (40, 30.0)):
            await store.record(make_snapshot(base + timedelta(minutes=minutes), cpu_usage_percent=cpu))
        # Nothing during 11:00
        await store.record(make_snapshot(base + timedelta(hours=2, minutes=5), cpu_usage_percent=50.0))

        buckets = await store.hourly_averages(base - timedelta(hours=1), base + timedelta(hours=3))

        assert [b.bucket_start for b in buckets] == [base, base + timedelta(hours=2)]
        assert buckets[0].avg_cpu == pytest.approx(20.0)
        assert buckets[0].max_cpu == pytest.approx(30.0)
        assert buckets[0].sample_count == 3
        assert buckets[1].avg_cpu == pytest.approx(50.0)
        assert buckets[1].sample_count == 1
        assert buckets[0].avg_gpu is None

    @pytest.mark.asyncio
    async def test_hourly_averages_memory_percent(self, store: HistoryStore, make_snapshot) -> None:
        """Test the bucket carries both memory bytes and memory percent."""
        await store.record(make_snapshot(memory_total_bytes=16 * GB, memory_used_bytes=4 * GB))
        await store.record(make_snapshot(NOW + timedelta(minutes=1), memory_total_bytes=16 * GB, memory_used_bytes=8 * GB))

        (bucket,) = await store.hourly_averages(NOW, NOW + timedelta(hours=1))

        assert bucket.avg_memory == pytest.approx(6 * GB)
        assert bucket.avg_memory_percent == pytest.approx(37.5)

    @pytest.mark.asyncio
    async def test_daily_averages_aligned_to_utc_midnight(self, store: HistoryStore, make_snapshot) -> None:
        """Test daily buckets start at UTC midnight."""
        await store.record(make_snapshot(NOW, cpu_usage_percent=20.0))
        await store.record(make_snapshot(NOW + timedelta(hours=6), cpu_usage_percent=40.0))
        await store.record(make_snapshot(NOW + timedelta(days=1), cpu_usage_percent=90.0))

        days = await store.daily_averages(NOW - timedelta(days=1), NOW + timedelta(days=2))

        midnight = NOW.replace(hour=0)
        assert [d.bucket_start for d in days] == [midnight, midnight + timedelta(days=1)]
        assert days[0].avg_cpu == pytest.approx(30.0)
        assert days[0].sample_count == 2

    @pytest.mark.asyncio
    async def test_aggregates_over_empty_range(self, store: HistoryStore, make_snapshot) -> None:
        """Test a range with no samples yields no buckets at either resolution."""
        await store.record(make_snapshot(NOW - timedelta(days=10), cpu_usage_percent=20.0))
        await store.record(make_snapshot(NOW + timedelta(days=10), cpu_usage_percent=40.0))

        start, end = NOW - timedelta(days=2), NOW + timedelta(days=2)

        assert await store.hourly_averages(start, end) == []
        assert await store.daily_averages(start, end) == []
        assert (await store.summarize(start, end)).is_empty

    @pytest.mark.asyncio
    async def test_summarize(self, store: HistoryStore, make_snapshot) -> None:
        """Test mean, max and min over a range."""
        for i, cpu in enumerate((10.0, 50.0, 90.0)):
            await store.record(
                make_snapshot(
                    NOW + timedelta(minutes=i),
                    cpu_usage_percent=cpu,
                    memory_used_bytes=(i + 1) * GB,
                    cpu_temperature_c=60.0 + i,
                )
            )

        summary = await store.summarize(NOW, NOW + timedelta(hours=1))

        assert summary.sample_count == 3
        assert summary.avg_cpu == pytest.approx(50.0)
        assert summary.max_cpu == pytest.approx(90.0)
        assert summary.min_cpu == pytest.approx(10.0)
        assert summary.avg_memory == pytest.approx(2 * GB)
        assert summary.max_memory == pytest.approx(3 * GB)
        assert summary.max_temperature == pytest.approx(62.0)
        assert summary.avg_gpu == 0.0

    @pytest.mark.asyncio
    async def test_summarize_empty_range(self, store: HistoryStore) -> None:
        """Test an empty range yields a zeroed summary."""
        summary = await store.summarize(NOW - timedelta(days=1), NOW)

        assert summary.is_empty
        assert summary.sample_count == 0
        assert summary.avg_cpu == 0.0

    @pytest.mark.asyncio
    async def test_total_snapshot_count_and_stats(self, store: HistoryStore, make_snapshot) -> None:
        """Test count and time span."""
        assert await store.total_snapshot_count() == 0

        await store.record(make_snapshot(NOW))
        await store.record(make_snapshot(NOW + timedelta(hours=1)))

        assert await store.total_snapshot_count() == 2
        stats = await store.stats()
        assert stats.total_snapshots == 2
        assert stats.oldest == NOW
        assert stats.newest == NOW + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_trim_chunk(self, store: HistoryStore, make_snapshot) -> None:
        """Test a chunk deletes only the oldest rows strictly before cutoff."""
        for i in range(5):
            await store.record(make_snapshot(NOW + timedelta(minutes=i)))

        cutoff = NOW + timedelta(minutes=3)
        assert await store.trim_chunk(cutoff, chunk_size=2) == 2
        assert await store.trim_chunk(cutoff, chunk_size=2) == 1
        assert await store.trim_chunk(cutoff, chunk_size=2) == 0

        remaining = await store.get_snapshots(NOW, NOW + timedelta(hours=1))
        assert [s.timestamp for s in remaining] == [cutoff, cutoff + timedelta(minutes=1)]

    @pytest.mark.asyncio
    async def test_trim_chunk_without_initialize_raises(self) -> None:
        """Test trimming an unopened store raises StorageError."""
        store = HistoryStore(database_path=":memory:")

        with pytest.raises(StorageError):
            await store.trim_chunk(NOW, chunk_size=10)

    @pytest.mark.asyncio
    async def test_file_backed_store_persists(self, tmp_path, make_snapshot) -> None:
        """Test snapshots survive closing and reopening the database."""
        db_path = tmp_path / "history" / "metrics.duckdb"

        first = HistoryStore(database_path=db_path)
        await first.initialize()
        await first.record(make_snapshot(cpu_usage_percent=33.0))
        await first.close()

        second = HistoryStore(database_path=db_path)
        await second.initialize()
        try:
            assert await second.total_snapshot_count() == 1
            (snapshot,) = await second.latest(1)
            assert snapshot.cpu_usage_percent == 33.0
            assert snapshot.timestamp.tzinfo is not None
        finally:
            await second.close()

    @pytest.mark.asyncio
    async def test_initialize_unwritable_path_raises(self, tmp_path) -> None:
        """Test an unusable database path is reported as StorageError."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        store = HistoryStore(database_path=blocker / "history.duckdb")

        with pytest.raises(StorageError):
            await store.initialize()
        assert not store.is_available

class TestConcurrentAccess:
    """Appends, aggregate reads and retention running together."""

    OLD = 40
    RECENT = 20
    CHUNK = 5

    @pytest.mark.asyncio
    async def test_record_query_and_trim_interleave(self, store: HistoryStore, make_snapshot, clock) -> None:
        """Test readers only ever see whole trim chunks and ordered timestamps."""
        old_day = NOW - timedelta(days=100)
        for i in range(self.OLD):
            await store.record(make_snapshot(old_day + timedelta(minutes=i), cpu_usage_percent=5.0))

        retention = RetentionService(store, retention_days=90, chunk_size=self.CHUNK, clock=clock)
        recent_start = NOW - timedelta(hours=1)
        observed: list[tuple[int, int]] = []

        async def writer() -> None:
            for i in range(self.RECENT):
                await store.record(make_snapshot(recent_start + timedelta(minutes=i), cpu_usage_percent=50.0))
                await asyncio.sleep(0)

        async def reader() -> None:
            for _ in range(15):
                days = await store.daily_averages(NOW - timedelta(days=200), NOW + timedelta(days=1))
                counts = {d.bucket_start: d.sample_count for d in days}
                observed.append(
                    (
                        counts.get(old_day.replace(hour=0), 0),
                        counts.get(NOW.replace(hour=0), 0),
                    )
                )
                snapshots = await store.get_snapshots(NOW - timedelta(days=200), NOW + timedelta(days=1))
                timestamps = [s.timestamp for s in snapshots]
                assert timestamps == sorted(timestamps)
                await asyncio.sleep(0)

        _, stats, _ = await asyncio.gather(writer(), retention.trim(), reader())

        assert stats.rows_deleted == self.OLD
        assert await store.total_snapshot_count() == self.RECENT
        remaining = await store.get_snapshots(NOW - timedelta(days=200), NOW + timedelta(days=1))
        assert [s.timestamp for s in remaining] == [
            recent_start + timedelta(minutes=i) for i in range(self.RECENT)
        ]

        old_counts = [old for old, _ in observed]
        recent_counts = [recent for _, recent in observed]
        assert all(count % self.CHUNK == 0 for count in old_counts)
        assert old_counts == sorted(old_counts, reverse=True)
        assert recent_counts == sorted(recent_counts)
        assert all(0 <= count <= self.RECENT for count in recent_counts)


def test_snapshot_timestamps_are_utc() -> None:
    """Test aware timestamps in other zones are normalised to UTC."""
    from datetime import timezone

    local = datetime(2026, 3, 2, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    assert Snapshot(timestamp=local).timestamp == NOW
    assert Snapshot(timestamp=local).timestamp.tzinfo is UTC
