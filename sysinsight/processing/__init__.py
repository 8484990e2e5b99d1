"""sysinsight trend processing."""

from sysinsight.processing.statistics import (
    LinearFit,
    detect_series_anomalies,
    detect_sudden_changes,
    linear_fit,
    peak_hours,
)
from sysinsight.processing.trends import TrendAnalyzer

__all__ = [
    "LinearFit",
    "TrendAnalyzer",
    "detect_series_anomalies",
    "detect_sudden_changes",
    "linear_fit",
    "peak_hours",
]
