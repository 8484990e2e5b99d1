"""sysinsight data models."""

from sysinsight.models.insight import (
    ActionSafety,
    Audience,
    Insight,
    InsightCategory,
    InsightEvent,
    InsightEventKind,
    InsightMetrics,
    InsightState,
    MetricTrend,
    Severity,
    SystemStatus,
    insight_id,
)
from sysinsight.models.snapshot import Snapshot, ThermalState
from sysinsight.models.trends import (
    AnalysisPeriod,
    AnomalyMetric,
    DailyPattern,
    MemoryLeakSuspect,
    PredictedMetrics,
    TrendAnomaly,
    WeeklyPattern,
)

__all__ = [
    "ActionSafety",
    "AnalysisPeriod",
    "AnomalyMetric",
    "Audience",
    "DailyPattern",
    "MemoryLeakSuspect",
    "PredictedMetrics",
    "TrendAnomaly",
    "WeeklyPattern",
    "Insight",
    "InsightCategory",
    "InsightEvent",
    "InsightEventKind",
    "InsightMetrics",
    "InsightState",
    "MetricTrend",
    "Severity",
    "Snapshot",
    "SystemStatus",
    "ThermalState",
    "insight_id",
]
