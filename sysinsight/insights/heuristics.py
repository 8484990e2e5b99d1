"""Diagnostic heuristics that explain conditions beyond simple thresholds.

Each detector is a pure static method: it takes plain numbers, returns an
Insight carrying symptom, root cause, counterfactual and confidence, or None
when the condition does not hold. Detectors never raise on odd input
(empty sequences, zero denominators, non-finite values).
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from datetime import UTC, datetime

from sysinsight.models import (
    ActionSafety,
    AnomalyMetric,
    Audience,
    Insight,
    InsightCategory,
    InsightMetrics,
    MemoryLeakSuspect,
    MetricTrend,
    Severity,
    TrendAnomaly,
)
from sysinsight.processing.statistics import linear_fit

logger = logging.getLogger(__name__)


def _finite(*values: float) -> bool:
    return all(isinstance(v, (int, float)) and math.isfinite(v) for v in values)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _build(
    category: InsightCategory,
    signature: str,
    *,
    title: str,
    severity: Severity,
    symptom: str,
    root_cause: str,
    counterfactual: str,
    confidence: float,
    audience: Audience = Audience.CONSUMER,
    action_safety: ActionSafety = ActionSafety.SAFE,
    metrics: InsightMetrics | None = None,
    suggested_actions: tuple[str, ...] = (),
    affected_processes: tuple[str, ...] = (),
    timestamp: datetime | None = None,
) -> Insight:
    return Insight.create(
        category,
        signature,
        title=title,
        description=f"{symptom}. {root_cause}.",
        severity=severity,
        timestamp=timestamp or datetime.now(UTC),
        symptom=symptom,
        root_cause=root_cause,
        counterfactual=counterfactual,
        confidence=max(0.0, min(1.0, confidence)),
        metrics=metrics,
        suggested_actions=suggested_actions,
        affected_processes=affected_processes,
        audience=audience,
        action_safety=action_safety,
    )


class ThermalAnalyzer:
    """Thermal and core-scheduling diagnostics."""

    @staticmethod
    def detect_silent_throttling(
        current_freq_mhz: float,
        base_freq_mhz: float,
        temperature: float,
        margin: float = 0.10,
        warm_threshold: float = 70.0,
    ) -> Insight | None:
        """Frequency well below base while the chip is warm.

        Fires when ``current < base × (1 - margin)`` and
        ``temperature > warm_threshold``. Confidence is ``0.5 + deficit``,
        capped at 1.0.
        """
        if not _finite(current_freq_mhz, base_freq_mhz, temperature) or base_freq_mhz <= 0:
            return None
        if current_freq_mhz >= base_freq_mhz * (1 - margin) or temperature <= warm_threshold:
            return None

        deficit = (base_freq_mhz - current_freq_mhz) / base_freq_mhz
        return _build(
            InsightCategory.THERMAL,
            "silent-throttling",
            title="Silent Thermal Throttling",
            severity=Severity.CRITICAL if deficit > 0.4 else Severity.WARNING,
            symptom=f"CPU running at {100 - deficit * 100:.0f}% of base frequency at {temperature:.0f}°C",
            root_cause="macOS is quietly lowering clock speed to shed heat",
            counterfactual=f"If cooling improved, performance would rise by about {deficit * 100:.0f}%",
            confidence=min(1.0, 0.5 + deficit),
            audience=Audience.DEV,
            metrics=InsightMetrics(
                current_value=current_freq_mhz,
                threshold_value=base_freq_mhz,
                unit="MHz",
                trend=MetricTrend.DECREASING,
            ),
            suggested_actions=("Improve airflow or use a cooling pad", "Reduce sustained load"),
        )

    @staticmethod
    def detect_core_imbalance(
        p_core_usage: Sequence[float],
        e_core_usage: Sequence[float],
        thread_count: int | None = None,
    ) -> Insight | None:
        """Load split badly between performance and efficiency cores.

        The single-thread check only runs when ``thread_count`` is known.
        """
        if not p_core_usage or not e_core_usage:
            return None
        if not _finite(*p_core_usage, *e_core_usage):
            return None

        avg_p = _mean(p_core_usage)
        avg_e = _mean(e_core_usage)

        if avg_p < 20 and avg_e > 70:
            return _build(
                InsightCategory.CPU,
                "core-imbalance-efficiency-bound",
                title="Work Stuck on Efficiency Cores",
                severity=Severity.INFO,
                symptom=f"Performance cores at {avg_p:.0f}% while efficiency cores at {avg_e:.0f}%",
                root_cause="Workload is running on efficiency cores instead of performance cores",
                counterfactual="If the scheduler rebalanced onto P-cores, throughput would rise 40-60%",
                confidence=0.82,
                audience=Audience.DEV,
                action_safety=ActionSafety.CAUTION,
                suggested_actions=(
                    "Raise the task's QoS class so the scheduler can rebalance it",
                ),
            )

        if avg_p > 90 and avg_e < 20:
            return _build(
                InsightCategory.CPU,
                "core-imbalance-performance-bound",
                title="Efficiency Cores Idle",
                severity=Severity.INFO,
                symptom=f"Performance cores at {avg_p:.0f}% while efficiency cores idle at {avg_e:.0f}%",
                root_cause="Workload saturates performance cores and leaves efficiency cores unused",
                counterfactual=(
                    f"If parallelized across all {len(p_core_usage) + len(e_core_usage)} cores, "
                    "wall-clock time would drop"
                ),
                confidence=0.8,
                audience=Audience.DEV,
                suggested_actions=("Parallelize the workload or split background work off",),
            )

        if thread_count is not None and thread_count < 4 and max(p_core_usage) > 90 and avg_p < 30:
            return _build(
                InsightCategory.CPU,
                "single-thread-bottleneck",
                title="Single-Threaded Bottleneck",
                severity=Severity.WARNING,
                symptom=f"One performance core at {max(p_core_usage):.0f}% while the others idle",
                root_cause="A single-threaded workload is bound to one core",
                counterfactual=f"If parallelized, it could use {len(p_core_usage)}x more CPU",
                confidence=0.88,
                audience=Audience.DEV,
                suggested_actions=("Parallelize the hot loop",),
            )

        return None

    @staticmethod
    def forecast_throttle(
        current_temp: float,
        temp_history: Sequence[float],
        window: int = 5,
        rising_fast: float = 0.5,
        throttle_threshold: float = 95.0,
        sample_interval_seconds: float = 30.0,
        horizon_minutes: float = 10.0,
    ) -> Insight | None:
        """Warn ahead of time that temperature will reach the throttle point.

        Fits a least-squares slope (°C per sample) over the last ``window``
        readings, ``temp_history`` followed by ``current_temp``. Confidence is
        the fraction of consecutive rising steps at the end of the window.
        """
        if window < 2 or sample_interval_seconds <= 0:
            return None

        series = [*temp_history, current_temp][-window:]
        if len(series) < window or not _finite(*series):
            return None

        fit = linear_fit(series)
        if fit is None or fit.slope <= rising_fast:
            return None

        if current_temp >= throttle_threshold:
            return None

        minutes = (throttle_threshold - current_temp) / fit.slope * sample_interval_seconds / 60
        if minutes > horizon_minutes:
            return None

        rising = 0
        for prev, cur in zip(reversed(series[:-1]), reversed(series[1:]), strict=True):
            if cur <= prev:
                break
            rising += 1

        per_minute = fit.slope * 60 / sample_interval_seconds
        return _build(
            InsightCategory.THERMAL,
            "throttle-forecast",
            title="Thermal Throttling Ahead",
            severity=Severity.WARNING,
            symptom=f"Temperature rising at {per_minute:.1f}°C/min, now {current_temp:.0f}°C",
            root_cause="Current workload is causing sustained heat buildup",
            counterfactual=f"If the workload continues, throttling starts in about {max(1, round(minutes))} min",
            confidence=rising / (window - 1),
            metrics=InsightMetrics(
                current_value=current_temp,
                threshold_value=throttle_threshold,
                unit="°C",
                trend=MetricTrend.INCREASING,
            ),
            suggested_actions=("Pause heavy background jobs", "Improve airflow"),
        )


class DevAnalyzer:
    """Developer workload diagnostics."""

    @staticmethod
    def detect_hot_reload_loop(
        file_watch_events: int,
        build_triggers: int,
        time_window_seconds: float,
    ) -> Insight | None:
        """Too many rebuilds per file change."""
        if time_window_seconds <= 0 or file_watch_events < 0 or build_triggers < 0:
            return None

        events_per_second = file_watch_events / time_window_seconds
        builds_per_event = build_triggers / max(file_watch_events, 1)
        if events_per_second <= 2 or builds_per_event <= 0.8:
            return None

        return _build(
            InsightCategory.DEV_WORKLOAD,
            "hot-reload-loop",
            title="Hot Reload Loop",
            severity=Severity.WARNING,
            symptom=f"{build_triggers} rebuilds in {time_window_seconds:.0f}s",
            root_cause="File watcher retriggers builds on its own output",
            counterfactual="If rebuilds were debounced, CPU usage would drop by about half",
            confidence=0.79,
            audience=Audience.DEV,
            suggested_actions=("Exclude build output from the watcher", "Debounce rebuilds"),
        )

    @staticmethod
    def detect_io_amplification(
        write_ops: int,
        read_ops: int,
        process_name: str,
    ) -> Insight | None:
        """Each write triggering many reads, typically from file watchers."""
        if write_ops <= 5 or read_ops < 0:
            return None

        amplification = read_ops / write_ops
        if amplification <= 10:
            return None

        saving = (1 - 1 / amplification) * 100
        return _build(
            InsightCategory.DISK,
            f"io-amplification:{process_name}",
            title="I/O Amplification",
            severity=Severity.INFO,
            symptom=f"{write_ops} writes triggered {read_ops} reads",
            root_cause=f"I/O amplification by {process_name} (file watchers)",
            counterfactual=f"If file watching were optimized, disk I/O would drop {saving:.0f}%",
            confidence=0.84,
            audience=Audience.DEV,
            affected_processes=(process_name,),
        )

    @staticmethod
    def detect_ml_cpu_fallback(
        cpu_usage: float,
        gpu_usage: float,
        ane_usage: float,
        ml_processes: Sequence[str],
    ) -> Insight | None:
        """ML inference burning CPU while GPU and Neural Engine sit idle."""
        if not ml_processes or not _finite(cpu_usage, gpu_usage, ane_usage):
            return None
        if cpu_usage <= 80 or gpu_usage >= 10 or ane_usage >= 5:
            return None

        return _build(
            InsightCategory.DEV_WORKLOAD,
            "ml-cpu-fallback",
            title="ML Running on CPU",
            severity=Severity.WARNING,
            symptom=f"ML inference using {cpu_usage:.0f}% CPU, GPU at {gpu_usage:.0f}%",
            root_cause="Model is falling back to CPU instead of GPU or Neural Engine",
            counterfactual="If running on Metal or the Neural Engine, 3-10x faster and about 70% less energy",
            confidence=0.77,
            audience=Audience.DEV,
            affected_processes=tuple(ml_processes),
            suggested_actions=("Enable the Metal (mps) backend", "Export the model to Core ML"),
        )


class ProcessAnalyzer:
    """Per-process diagnostics."""

    @staticmethod
    def detect_runaway_process(
        process_name: str,
        cpu_percent: float,
        duration_seconds: float,
    ) -> Insight | None:
        """A process pinned near full CPU for over a minute."""
        if not _finite(cpu_percent, duration_seconds):
            return None
        if cpu_percent <= 90 or duration_seconds <= 60:
            return None

        return _build(
            InsightCategory.PROCESS,
            f"runaway:{process_name}",
            title="Runaway Process",
            severity=Severity.WARNING,
            symptom=f"{process_name} using {cpu_percent:.0f}% CPU for {duration_seconds // 60:.0f} min",
            root_cause="Possible runaway or stuck process",
            counterfactual=f"If stopped, CPU usage would drop about {cpu_percent:.0f}%",
            confidence=0.72,
            action_safety=ActionSafety.CAUTION,
            affected_processes=(process_name,),
            suggested_actions=(f"Quit or force quit {process_name}",),
        )

    @staticmethod
    def detect_energy_waste(
        process_name: str,
        wake_ups_per_second: int,
        cpu_percent: float,
    ) -> Insight | None:
        """Low CPU but constant wake-ups draining the battery."""
        if not _finite(cpu_percent) or cpu_percent >= 5 or wake_ups_per_second <= 100:
            return None

        return _build(
            InsightCategory.PROCESS,
            f"energy-waste:{process_name}",
            title="Excessive Wake-ups",
            severity=Severity.INFO,
            symptom=f"{process_name}: {wake_ups_per_second} wake-ups/sec with {cpu_percent:.0f}% CPU",
            root_cause="Excessive timer wake-ups are keeping the CPU out of idle",
            counterfactual="If fixed, battery life would improve 5-10%",
            confidence=0.81,
            affected_processes=(process_name,),
        )


def leak_suspect_insight(suspect: MemoryLeakSuspect) -> Insight:
    """Memory insight for a leak suspect found by trend analysis."""
    severity = Severity.CRITICAL if suspect.growth_rate_per_day > 0.05 else Severity.WARNING
    return _build(
        InsightCategory.MEMORY,
        "memory-leak",
        title="Possible Memory Leak",
        severity=severity,
        symptom=(
            f"Daily memory usage grew {suspect.growth_rate_per_day:.1%} per day "
            f"over {suspect.days_observed} days"
        ),
        root_cause="A long-running process is accumulating memory it never releases",
        counterfactual="If the leaking app is restarted, memory returns to its earlier baseline",
        confidence=suspect.confidence,
        metrics=InsightMetrics(
            current_value=suspect.growth_rate_per_day * 100,
            threshold_value=1.0,
            unit="%/day",
            trend=MetricTrend.INCREASING,
        ),
        suggested_actions=("Restart long-running apps", "Check memory growth per process"),
        timestamp=suspect.detected_at,
    )


_ANOMALY_CATEGORY = {
    AnomalyMetric.CPU: InsightCategory.CPU,
    AnomalyMetric.MEMORY: InsightCategory.MEMORY,
    AnomalyMetric.GPU: InsightCategory.CPU,
    AnomalyMetric.TEMPERATURE: InsightCategory.THERMAL,
    AnomalyMetric.SUDDEN_CHANGE: InsightCategory.CPU,
}


def anomaly_insight(anomaly: TrendAnomaly) -> Insight:
    """Insight for a statistically abnormal sample from trend analysis."""
    metric = anomaly.metric_type
    if metric is AnomalyMetric.SUDDEN_CHANGE:
        symptom = f"Daily CPU average changed by {anomaly.observed_value:.0f} points"
        root_cause = "Workload changed abruptly from one day to the next"
    else:
        symptom = anomaly.description
        root_cause = f"{metric.value} is {abs(anomaly.deviation):.1f} standard deviations from its recent norm"

    return _build(
        _ANOMALY_CATEGORY[metric],
        f"anomaly-{metric.value}",
        title=f"Unusual {metric.value.replace('_', ' ')}",
        severity=anomaly.severity,
        symptom=symptom,
        root_cause=root_cause,
        counterfactual="If the triggering workload stops, the metric returns to its usual range",
        confidence=min(0.95, 0.5 + abs(anomaly.deviation) / 10),
        metrics=InsightMetrics(
            current_value=anomaly.observed_value,
            threshold_value=anomaly.expected_max,
            unit="°C" if metric is AnomalyMetric.TEMPERATURE else "%",
        ),
        timestamp=anomaly.date,
    )
