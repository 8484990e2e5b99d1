"""Tests for the system health score."""

from __future__ import annotations

import pytest

from sysinsight.insights.health import HealthStatus, calculate_health
from sysinsight.insights.rules import BYTES_PER_MB
from sysinsight.models import Snapshot

GB = 1024**3


class TestCalculateHealth:
    """Test suite for calculate_health."""

    def test_missing_metrics_score_full(self) -> None:
        report = calculate_health(Snapshot())

        assert report.overall_score == 100
        assert report.status is HealthStatus.EXCELLENT
        assert report.recommendations == ()

    def test_idle_machine(self) -> None:
        report = calculate_health(
            Snapshot(
                cpu_usage_percent=5.0,
                memory_total_bytes=16 * GB,
                memory_used_bytes=4 * GB,
                cpu_temperature_c=45.0,
                disk_read_bytes_per_sec=1 * BYTES_PER_MB,
            )
        )

        assert report.cpu_score == 95
        assert report.memory_score == 100
        assert report.thermal_score == 100
        assert report.disk_score == 100
        assert report.status is HealthStatus.EXCELLENT

    @pytest.mark.parametrize(
        ("temperature", "expected"),
        [(49.0, 100), (60.0, 80), (75.0, 45), (90.0, 7), (120.0, 0)],
    )
    def test_thermal_bands(self, temperature: float, expected: int) -> None:
        assert calculate_health(Snapshot(cpu_temperature_c=temperature)).thermal_score == expected

    @pytest.mark.parametrize(
        ("mb_per_sec", "expected"),
        [(10.0, 100), (125.0, 75), (300.0, 40), (2000.0, 20)],
    )
    def test_disk_bands(self, mb_per_sec: float, expected: int) -> None:
        snapshot = Snapshot(disk_write_bytes_per_sec=mb_per_sec * BYTES_PER_MB)

        assert calculate_health(snapshot).disk_score == expected

    def test_stressed_machine(self) -> None:
        report = calculate_health(
            Snapshot(
                cpu_usage_percent=97.0,
                memory_total_bytes=16 * GB,
                memory_used_bytes=16 * GB,
                cpu_temperature_c=95.0,
                top_processes=("kernel_task",),
            )
        )

        # (30·3 + 25·0 + 20·0 + 15·100 + 10·100) // 100
        assert report.overall_score == 25
        assert report.status is HealthStatus.CRITICAL
        categories = [r.category for r in report.recommendations]
        assert categories == ["cpu", "memory", "thermal"]
        assert "kernel_task" in report.recommendations[0].description

    @pytest.mark.parametrize(
        ("score", "status"),
        [(95, HealthStatus.EXCELLENT), (70, HealthStatus.GOOD), (50, HealthStatus.FAIR), (30, HealthStatus.POOR), (29, HealthStatus.CRITICAL)],
    )
    def test_status_bands(self, score: int, status: HealthStatus) -> None:
        assert HealthStatus.from_score(score) is status
