"""Prometheus metrics collection for sysinsight.

Provides in-process instrumentation for history storage, retention, trend
analysis and insight evaluation. Nothing here starts an HTTP exporter; an
embedding process can expose the default registry however it likes.
"""

import logging

from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)

# =============================================================================
# History Store Metrics
# =============================================================================

snapshots_recorded_total = Counter(
    "sysinsight_snapshots_recorded_total",
    "Total snapshots persisted to the history store",
)

snapshots_dropped_total = Counter(
    "sysinsight_snapshots_dropped_total",
    "Total snapshots dropped because persistence failed",
    ["reason"],
)

history_query_duration_seconds = Histogram(
    "sysinsight_history_query_duration_seconds",
    "History store query duration in seconds",
    ["query_type"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

history_query_errors_total = Counter(
    "sysinsight_history_query_errors_total",
    "Total failed history store queries",
    ["query_type"],
)

history_snapshot_count = Gauge(
    "sysinsight_history_snapshot_count",
    "Current number of snapshots in the history store",
)

# =============================================================================
# Retention Metrics
# =============================================================================

retention_rows_trimmed_total = Counter(
    "sysinsight_retention_rows_trimmed_total",
    "Total snapshots removed by retention trim",
)

retention_duration_seconds = Histogram(
    "sysinsight_retention_duration_seconds",
    "Duration of retention trim passes in seconds",
    buckets=[0.01, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0],
)

# =============================================================================
# Analysis Metrics
# =============================================================================

analysis_runs_total = Counter(
    "sysinsight_analysis_runs_total",
    "Total trend analysis passes",
    ["status"],  # completed, skipped, failed
)

analysis_duration_seconds = Histogram(
    "sysinsight_analysis_duration_seconds",
    "Trend analysis pass duration in seconds",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0],
)

anomalies_detected = Gauge(
    "sysinsight_anomalies_detected",
    "Anomalies found by the latest analysis pass",
)

leak_suspects_detected = Gauge(
    "sysinsight_leak_suspects_detected",
    "Memory leak suspects found by the latest analysis pass",
)

# =============================================================================
# Insight Metrics
# =============================================================================

active_insights = Gauge(
    "sysinsight_active_insights",
    "Currently active insights",
    ["severity"],
)

insight_transitions_total = Counter(
    "sysinsight_insight_transitions_total",
    "Insight lifecycle transitions",
    ["kind", "category"],
)

evaluation_duration_seconds = Histogram(
    "sysinsight_evaluation_duration_seconds",
    "Insight evaluation tick duration in seconds",
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5],
)

subscriber_events_dropped_total = Counter(
    "sysinsight_subscriber_events_dropped_total",
    "Insight events discarded because a subscriber queue was full",
)
