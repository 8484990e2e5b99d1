"""Threshold rules evaluated against every live snapshot."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from sysinsight.config import THRESHOLD_MAX, THRESHOLD_MIN, ThresholdConfig
from sysinsight.models import (
    ActionSafety,
    Insight,
    InsightCategory,
    InsightMetrics,
    Severity,
    Snapshot,
)

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1_048_576


class RuleMetric(str, Enum):
    """Metric a threshold rule watches."""

    CPU = "cpu"
    MEMORY = "memory"
    GPU = "gpu"
    TEMPERATURE = "temperature"
    IO = "io"


def _disk_mb_per_sec(snapshot: Snapshot) -> float | None:
    total = snapshot.disk_total_bytes_per_sec
    return None if total is None else total / BYTES_PER_MB


_READERS: dict[RuleMetric, Callable[[Snapshot], float | None]] = {
    RuleMetric.CPU: lambda s: s.cpu_usage_percent,
    RuleMetric.MEMORY: lambda s: s.memory_usage_percent,
    RuleMetric.GPU: lambda s: s.gpu_usage_percent,
    RuleMetric.TEMPERATURE: lambda s: s.cpu_temperature_c,
    RuleMetric.IO: _disk_mb_per_sec,
}


@dataclass(frozen=True)
class _RuleText:
    title: str
    category: InsightCategory
    unit: str
    symptom: str
    root_cause: str
    counterfactual: str
    actions: tuple[str, ...]
    confidence: float


_RULE_TEXT: dict[RuleMetric, _RuleText] = {
    RuleMetric.CPU: _RuleText(
        title="CPU Saturation",
        category=InsightCategory.CPU,
        unit="%",
        symptom="CPU usage at {value:.0f}% (threshold {threshold:.0f}%)",
        root_cause="Sustained compute load is consuming most processor capacity",
        counterfactual="If the heaviest process is paused, CPU usage drops below {threshold:.0f}%",
        actions=(
            "Quit or pause the top CPU consumer",
            "Open Activity Monitor to inspect running processes",
        ),
        confidence=0.9,
    ),
    RuleMetric.MEMORY: _RuleText(
        title="Memory Pressure",
        category=InsightCategory.MEMORY,
        unit="%",
        symptom="Memory usage at {value:.0f}% (threshold {threshold:.0f}%)",
        root_cause="Resident memory of running apps is approaching physical RAM",
        counterfactual="If large apps are closed, swapping stops and responsiveness returns",
        actions=(
            "Close apps holding the most memory",
            "Reduce open browser tabs",
        ),
        confidence=0.85,
    ),
    RuleMetric.GPU: _RuleText(
        title="GPU Saturation",
        category=InsightCategory.CPU,
        unit="%",
        symptom="GPU usage at {value:.0f}% (threshold {threshold:.0f}%)",
        root_cause="A graphics or compute workload is keeping the GPU fully busy",
        counterfactual="If rendering or inference jobs are paused, GPU load returns to idle",
        actions=("Check which app is rendering or running inference",),
        confidence=0.85,
    ),
    RuleMetric.TEMPERATURE: _RuleText(
        title="High CPU Temperature",
        category=InsightCategory.THERMAL,
        unit="°C",
        symptom="CPU temperature at {value:.0f}°C (threshold {threshold:.0f}°C)",
        root_cause="Heat output exceeds what the cooling system dissipates",
        counterfactual="If sustained load drops or airflow improves, temperature falls below {threshold:.0f}°C",
        actions=(
            "Reduce sustained load",
            "Make sure vents are not blocked",
        ),
        confidence=0.9,
    ),
    RuleMetric.IO: _RuleText(
        title="Disk I/O Bottleneck",
        category=InsightCategory.DISK,
        unit="MB/s",
        symptom="Disk throughput at {value:.0f} MB/s (threshold {threshold:.0f} MB/s)",
        root_cause="Heavy reads and writes are saturating the storage device",
        counterfactual="If bulk copies or indexing finish, apps stop waiting on disk",
        actions=(
            "Check for running backups, Spotlight indexing or large copies",
        ),
        confidence=0.8,
    ),
}


@dataclass
class ThresholdRule:
    """Warning at ``threshold``, critical at the critical threshold.

    The critical threshold is ``threshold + critical_margin`` for percent and
    temperature rules and ``2 × threshold`` for disk throughput.
    """

    metric: RuleMetric
    threshold: float
    critical_margin: float = 15.0

    @property
    def critical_threshold(self) -> float:
        if self.metric is RuleMetric.IO:
            return self.threshold * 2
        return self.threshold + self.critical_margin

    @property
    def signature(self) -> str:
        return f"{self.metric.value}-threshold"

    def read(self, snapshot: Snapshot) -> float | None:
        return _READERS[self.metric](snapshot)

    def severity_for(self, value: float) -> Severity | None:
        if value >= self.critical_threshold:
            return Severity.CRITICAL
        if value >= self.threshold:
            return Severity.WARNING
        return None

    def evaluate(self, snapshot: Snapshot) -> Insight | None:
        """Return an insight when the snapshot crosses the threshold.

        A missing field never triggers.
        """
        value = self.read(snapshot)
        if value is None:
            return None

        severity = self.severity_for(value)
        if severity is None:
            return None

        text = _RULE_TEXT[self.metric]
        fmt = {"value": value, "threshold": self.threshold}
        symptom = text.symptom.format(**fmt)
        affected = snapshot.top_processes if self.metric in (RuleMetric.CPU, RuleMetric.MEMORY) else ()

        return Insight.create(
            text.category,
            self.signature,
            title=text.title,
            description=f"{symptom}. {text.root_cause}.",
            severity=severity,
            timestamp=snapshot.timestamp,
            symptom=symptom,
            root_cause=text.root_cause,
            counterfactual=text.counterfactual.format(**fmt),
            confidence=text.confidence,
            metrics=InsightMetrics(
                current_value=value,
                threshold_value=self.threshold,
                unit=text.unit,
            ),
            affected_processes=affected,
            suggested_actions=text.actions,
            action_safety=ActionSafety.CAUTION if affected else ActionSafety.SAFE,
        )


def validate_threshold(metric: RuleMetric, value: float) -> float:
    """Check a threshold against its allowed range.

    Raises:
        ValueError: If the value is out of range
    """
    if metric is RuleMetric.IO:
        if value <= 0:
            raise ValueError(f"io threshold must be positive, got {value}")
        return value
    if not THRESHOLD_MIN <= value <= THRESHOLD_MAX:
        raise ValueError(
            f"{metric.value} threshold must be within [{THRESHOLD_MIN:.0f}, {THRESHOLD_MAX:.0f}], got {value}"
        )
    return value


def build_rules(config: ThresholdConfig | None = None) -> dict[RuleMetric, ThresholdRule]:
    """Create the standard rule set from threshold configuration."""
    config = config or ThresholdConfig()
    margin = config.critical_margin
    return {
        RuleMetric.CPU: ThresholdRule(RuleMetric.CPU, config.cpu_percent, margin),
        RuleMetric.MEMORY: ThresholdRule(RuleMetric.MEMORY, config.memory_percent, margin),
        RuleMetric.GPU: ThresholdRule(RuleMetric.GPU, config.gpu_percent, margin),
        RuleMetric.TEMPERATURE: ThresholdRule(RuleMetric.TEMPERATURE, config.temperature_c, margin),
        RuleMetric.IO: ThresholdRule(RuleMetric.IO, config.io_mb_per_sec, margin),
    }
