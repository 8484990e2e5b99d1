"""sysinsight insight inference: rules, heuristics, engine and health score."""

from sysinsight.insights.engine import InsightEngine, summarize_status
from sysinsight.insights.health import HealthReport, HealthStatus, calculate_health
from sysinsight.insights.heuristics import (
    DevAnalyzer,
    ProcessAnalyzer,
    ThermalAnalyzer,
    anomaly_insight,
    leak_suspect_insight,
)
from sysinsight.insights.rules import RuleMetric, ThresholdRule, build_rules

__all__ = [
    "DevAnalyzer",
    "HealthReport",
    "HealthStatus",
    "InsightEngine",
    "ProcessAnalyzer",
    "RuleMetric",
    "ThermalAnalyzer",
    "ThresholdRule",
    "anomaly_insight",
    "build_rules",
    "calculate_health",
    "leak_suspect_insight",
    "summarize_status",
]
