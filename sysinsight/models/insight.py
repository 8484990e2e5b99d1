"""Insight models: explainable diagnostics derived from rules and heuristics."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Fixed namespace so that the same (category, signature) pair always maps to
# the same insight id across processes.
INSIGHT_NAMESPACE = uuid.UUID("6f1c2a54-3d0e-4b8e-9a51-8c7d2f40b913")


class Severity(str, Enum):
    """Insight severity, totally ordered info < warning < critical."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def priority(self) -> int:
        return _SEVERITY_PRIORITY[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.priority < other.priority

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.priority <= other.priority

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.priority > other.priority

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.priority >= other.priority


_SEVERITY_PRIORITY = {
    Severity.INFO: 0,
    Severity.WARNING: 1,
    Severity.CRITICAL: 2,
}


class InsightCategory(str, Enum):
    """Subsystem an insight is about."""

    THERMAL = "thermal"
    CPU = "cpu"
    MEMORY = "memory"
    DISK = "disk"
    NETWORK = "network"
    PROCESS = "process"
    DEV_WORKLOAD = "dev_workload"


class ActionSafety(str, Enum):
    """How safe it is to act on the suggested remedy."""

    SAFE = "safe"  # can be applied without confirmation
    CAUTION = "caution"  # user should confirm
    DANGEROUS = "dangerous"  # expert only


class Audience(str, Enum):
    """Who the insight is written for."""

    CONSUMER = "consumer"
    DEV = "dev"
    EXPERT = "expert"


class MetricTrend(str, Enum):
    """Direction of the metric behind an insight."""

    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class SystemStatus(str, Enum):
    """Overall status derived from the active insight set."""

    NORMAL = "normal"
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @classmethod
    def from_severity(cls, severity: Severity | None) -> SystemStatus:
        if severity is None:
            return cls.NORMAL
        return cls(severity.value)


class InsightMetrics(BaseModel):
    """Metric reading attached to an insight for visualization."""

    model_config = ConfigDict(frozen=True)

    current_value: float
    threshold_value: float
    unit: str
    trend: MetricTrend = MetricTrend.STABLE

    @property
    def percent_of_threshold(self) -> float:
        if self.threshold_value <= 0:
            return 0.0
        return min(self.current_value / self.threshold_value * 100, 100.0)


def insight_id(category: InsightCategory, signature: str) -> str:
    """Deterministic insight id from its category and root-cause signature."""
    return str(uuid.uuid5(INSIGHT_NAMESPACE, f"{category.value}:{signature}"))


class Insight(BaseModel):
    """Synthesized diagnostic: symptom, root cause, remedy and confidence."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    category: InsightCategory
    severity: Severity
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    symptom: str
    root_cause: str
    counterfactual: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    metrics: InsightMetrics | None = None
    affected_processes: tuple[str, ...] = ()
    suggested_actions: tuple[str, ...] = ()
    action_safety: ActionSafety = ActionSafety.SAFE
    audience: Audience = Audience.CONSUMER
    first_seen: datetime | None = None
    resolved_at: datetime | None = None

    @classmethod
    def create(
        cls,
        category: InsightCategory,
        signature: str,
        **fields: object,
    ) -> Insight:
        """Build an insight whose id is derived from ``category`` and ``signature``."""
        return cls(id=insight_id(category, signature), category=category, **fields)


class InsightEventKind(str, Enum):
    """Lifecycle transition published to subscribers."""

    RAISED = "raised"
    UPDATED = "updated"
    RESOLVED = "resolved"


class InsightEvent(BaseModel):
    """Change notification for a single insight."""

    model_config = ConfigDict(frozen=True)

    kind: InsightEventKind
    insight: Insight


class InsightState(BaseModel):
    """Read-only view of the engine's state after an evaluation tick."""

    model_config = ConfigDict(frozen=True)

    current_insights: tuple[Insight, ...] = ()
    insight_history: tuple[Insight, ...] = ()
    current_status: SystemStatus = SystemStatus.NORMAL
    status_summary: str = "System normal"
    evaluated_at: datetime | None = None
