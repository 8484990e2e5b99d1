"""End-to-end test: record an hour of snapshots, summarise, analyse and explain."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from sysinsight.config import StorageConfig, SysInsightConfig, ThresholdConfig
from sysinsight.main import InsightApplication
from sysinsight.models import AnalysisPeriod, InsightEventKind, Severity, Snapshot, SystemStatus

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)
GB = 1024**3

pytestmark = pytest.mark.integration


def _ramp() -> list[Snapshot]:
    """100 snapshots over the last hour with CPU rising linearly from 10% to 95%."""
    start = NOW - timedelta(hours=1)
    return [
        Snapshot(
            timestamp=start + timedelta(seconds=36 * i),
            cpu_usage_percent=10.0 + 85.0 * i / 99,
            memory_total_bytes=16 * GB,
            memory_used_bytes=6 * GB,
            top_processes=("swift-frontend",),
        )
        for i in range(100)
    ]


class TestEndToEnd:
    """Full pipeline against a file-backed history."""

    @pytest.fixture
    def config(self, tmp_path: Path) -> SysInsightConfig:
        return SysInsightConfig(
            storage=StorageConfig(path=str(tmp_path / "history" / "metrics_history.duckdb")),
            thresholds=ThresholdConfig(cpu_percent=80.0),
        )

    @pytest.mark.asyncio
    async def test_cpu_ramp(self, config: SysInsightConfig, clock) -> None:
        application = InsightApplication(config, clock=clock)
        await application.initialize()
        events = application.engine.subscribe(maxsize=500)

        try:
            severities = []
            for snapshot in _ramp():
                state = await application.ingest(snapshot)
                active = [i for i in state.current_insights if i.title == "CPU Saturation"]
                severities.append(active[0].severity if active else None)

            # Exactly one CPU insight, escalating from warning to critical at 95%
            assert len(state.current_insights) == 1
            insight = state.current_insights[0]
            assert insight.title == "CPU Saturation"
            assert insight.severity is Severity.CRITICAL
            assert insight.affected_processes == ("swift-frontend",)
            assert state.current_status is SystemStatus.CRITICAL

            first_warning = severities.index(Severity.WARNING)
            assert all(s is None for s in severities[:first_warning])
            assert all(s is Severity.WARNING for s in severities[first_warning:-1])
            assert severities[-1] is Severity.CRITICAL
            assert insight.first_seen == _ramp()[first_warning].timestamp

            kinds = [events.get_nowait().kind for _ in range(events.qsize())]
            assert kinds.count(InsightEventKind.RAISED) == 1
            assert InsightEventKind.RESOLVED not in kinds

            summary = await application.analyzer.usage_summary(AnalysisPeriod.DAY)
            assert summary.sample_count == 100
            assert summary.avg_cpu == pytest.approx(52.5)
            assert summary.max_cpu == pytest.approx(95.0)
            assert summary.min_cpu == pytest.approx(10.0)

            assert await application.run_analysis() is True
            assert application.analyzer.memory_leak_suspects == ()
            assert len(application.analyzer.daily_patterns) >= 1
        finally:
            await application.stop(timeout=1)

    @pytest.mark.asyncio
    async def test_history_survives_restart_and_retention(self, config: SysInsightConfig, clock) -> None:
        first = InsightApplication(config, clock=clock)
        await first.initialize()
        for snapshot in _ramp():
            await first.ingest(snapshot)
        await first.stop(timeout=1)

        later = NOW + timedelta(days=91)
        second = InsightApplication(config, clock=lambda: later)
        await second.initialize()
        try:
            assert await second.store.total_snapshot_count() == 100

            stats = await second.retention.trim()

            assert stats.rows_deleted == 100
            assert await second.store.total_snapshot_count() == 0
        finally:
            await second.stop(timeout=1)
