"""Tests for diagnostic heuristics."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from sysinsight.insights.heuristics import (
    DevAnalyzer,
    ProcessAnalyzer,
    ThermalAnalyzer,
    anomaly_insight,
    leak_suspect_insight,
)
from sysinsight.models import (
    ActionSafety,
    AnomalyMetric,
    InsightCategory,
    MemoryLeakSuspect,
    Severity,
    TrendAnomaly,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


class TestThermalAnalyzer:
    """Test suite for ThermalAnalyzer."""

    def test_silent_throttling(self) -> None:
        insight = ThermalAnalyzer.detect_silent_throttling(2000.0, 3200.0, 85.0)

        assert insight is not None
        assert insight.title == "Silent Thermal Throttling"
        assert insight.severity is Severity.WARNING
        assert insight.confidence == pytest.approx(0.875)
        assert insight.metrics.unit == "MHz"

    def test_severe_throttling_is_critical(self) -> None:
        insight = ThermalAnalyzer.detect_silent_throttling(1500.0, 3200.0, 90.0)

        assert insight.severity is Severity.CRITICAL
        assert insight.confidence == 1.0

    @pytest.mark.parametrize(
        ("current", "base", "temp"),
        [
            (3100.0, 3200.0, 90.0),  # within margin
            (2000.0, 3200.0, 65.0),  # not warm
            (2000.0, 0.0, 90.0),  # no base frequency
            (float("nan"), 3200.0, 90.0),
        ],
    )
    def test_no_throttling(self, current: float, base: float, temp: float) -> None:
        assert ThermalAnalyzer.detect_silent_throttling(current, base, temp) is None

    def test_efficiency_bound_imbalance(self) -> None:
        insight = ThermalAnalyzer.detect_core_imbalance([10.0, 15.0], [80.0, 90.0], thread_count=8)

        assert insight.title == "Work Stuck on Efficiency Cores"
        assert insight.severity is Severity.INFO
        assert insight.confidence == pytest.approx(0.82)

    def test_performance_bound_imbalance(self) -> None:
        insight = ThermalAnalyzer.detect_core_imbalance([95.0, 97.0], [5.0, 10.0], thread_count=8)

        assert insight.title == "Efficiency Cores Idle"
        assert "4 cores" in insight.counterfactual

    def test_single_thread_bottleneck(self) -> None:
        insight = ThermalAnalyzer.detect_core_imbalance([99.0, 2.0, 3.0, 4.0], [30.0], thread_count=1)

        assert insight.title == "Single-Threaded Bottleneck"
        assert insight.severity is Severity.WARNING
        assert insight.confidence == pytest.approx(0.88)

    def test_single_thread_check_needs_thread_count(self) -> None:
        assert ThermalAnalyzer.detect_core_imbalance([99.0, 2.0, 3.0, 4.0], [30.0]) is None
        assert ThermalAnalyzer.detect_core_imbalance([99.0, 2.0, 3.0, 4.0], [30.0], thread_count=16) is None

    def test_balanced_cores(self) -> None:
        assert ThermalAnalyzer.detect_core_imbalance([50.0], [50.0], thread_count=8) is None
        assert ThermalAnalyzer.detect_core_imbalance([], [50.0], thread_count=8) is None

    def test_forecast_throttle(self) -> None:
        insight = ThermalAnalyzer.forecast_throttle(88.0, [80.0, 82.0, 84.0, 86.0])

        assert insight is not None
        assert insight.category is InsightCategory.THERMAL
        assert "4.0°C/min" in insight.symptom
        assert "2 min" in insight.counterfactual
        assert insight.confidence == pytest.approx(1.0)

    def test_forecast_confidence_counts_trailing_rises(self) -> None:
        insight = ThermalAnalyzer.forecast_throttle(90.0, [80.0, 84.0, 83.0, 86.0])

        assert insight is not None
        assert insight.confidence == pytest.approx(0.5)

    @pytest.mark.parametrize(
        ("current", "history"),
        [
            (70.0, [70.0, 70.0, 70.0, 70.0]),  # stable
            (88.0, [84.0, 86.0]),  # too few samples
            (96.0, [88.0, 90.0, 92.0, 94.0]),  # already throttling
            (40.0, [32.0, 34.0, 36.0, 38.0]),  # far from the throttle point
        ],
    )
    def test_no_forecast(self, current: float, history: list[float]) -> None:
        assert ThermalAnalyzer.forecast_throttle(current, history) is None


class TestDevAnalyzer:
    """Test suite for DevAnalyzer."""

    def test_hot_reload_loop(self) -> None:
        insight = DevAnalyzer.detect_hot_reload_loop(file_watch_events=50, build_triggers=45, time_window_seconds=10)

        assert insight.title == "Hot Reload Loop"
        assert insight.category is InsightCategory.DEV_WORKLOAD
        assert insight.confidence == pytest.approx(0.79)

    def test_no_hot_reload_loop(self) -> None:
        assert DevAnalyzer.detect_hot_reload_loop(10, 9, 10) is None
        assert DevAnalyzer.detect_hot_reload_loop(50, 5, 10) is None
        assert DevAnalyzer.detect_hot_reload_loop(50, 45, 0) is None

    def test_io_amplification(self) -> None:
        insight = DevAnalyzer.detect_io_amplification(write_ops=10, read_ops=500, process_name="webpack")

        assert insight.affected_processes == ("webpack",)
        assert "98%" in insight.counterfactual
        other = DevAnalyzer.detect_io_amplification(write_ops=10, read_ops=500, process_name="vite")
        assert other.id != insight.id

    def test_no_io_amplification(self) -> None:
        assert DevAnalyzer.detect_io_amplification(5, 500, "webpack") is None
        assert DevAnalyzer.detect_io_amplification(10, 100, "webpack") is None

    def test_ml_cpu_fallback(self) -> None:
        insight = DevAnalyzer.detect_ml_cpu_fallback(95.0, 2.0, 0.0, ["python3"])

        assert insight.title == "ML Running on CPU"
        assert insight.confidence == pytest.approx(0.77)
        assert DevAnalyzer.detect_ml_cpu_fallback(95.0, 40.0, 0.0, ["python3"]) is None
        assert DevAnalyzer.detect_ml_cpu_fallback(95.0, 2.0, 0.0, []) is None


class TestProcessAnalyzer:
    """Test suite for ProcessAnalyzer."""

    def test_runaway_process(self) -> None:
        insight = ProcessAnalyzer.detect_runaway_process("mds_stores", 98.0, 300.0)

        assert insight.title == "Runaway Process"
        assert insight.action_safety is ActionSafety.CAUTION
        assert "5 min" in insight.symptom
        assert ProcessAnalyzer.detect_runaway_process("mds_stores", 98.0, 30.0) is None

    def test_energy_waste(self) -> None:
        insight = ProcessAnalyzer.detect_energy_waste("Slack", 250, 2.0)

        assert insight.title == "Excessive Wake-ups"
        assert insight.confidence == pytest.approx(0.81)
        assert ProcessAnalyzer.detect_energy_waste("Slack", 50, 2.0) is None
        assert ProcessAnalyzer.detect_energy_waste("Slack", 250, 20.0) is None


class TestTrendInsights:
    """Test suite for insights built from trend analysis results."""

    def _suspect(self, growth: float) -> MemoryLeakSuspect:
        return MemoryLeakSuspect(
            description="growing",
            growth_rate_per_day=growth,
            confidence=0.85,
            slope_bytes_per_day=1e8,
            r_squared=0.85,
            days_observed=9,
            detected_at=NOW,
        )

    def test_leak_severity(self) -> None:
        assert leak_suspect_insight(self._suspect(0.02)).severity is Severity.WARNING
        assert leak_suspect_insight(self._suspect(0.06)).severity is Severity.CRITICAL

    def test_leak_insight_content(self) -> None:
        insight = leak_suspect_insight(self._suspect(0.02))

        assert insight.category is InsightCategory.MEMORY
        assert insight.confidence == pytest.approx(0.85)
        assert insight.timestamp == NOW
        assert "2.0% per day" in insight.symptom
        assert "9 days" in insight.symptom

    def test_anomaly_insight(self) -> None:
        anomaly = TrendAnomaly(
            date=NOW,
            metric_type=AnomalyMetric.TEMPERATURE,
            observed_value=98.0,
            expected_min=50.0,
            expected_max=70.0,
            deviation=5.6,
            severity=Severity.CRITICAL,
        )

        insight = anomaly_insight(anomaly)

        assert insight.category is InsightCategory.THERMAL
        assert insight.severity is Severity.CRITICAL
        assert insight.metrics.unit == "°C"
        assert insight.timestamp == NOW
        assert anomaly_insight(anomaly).id == insight.id
