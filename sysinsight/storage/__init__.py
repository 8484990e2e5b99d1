"""sysinsight storage layer."""

from sysinsight.storage.history_store import DAY_SECONDS, HOUR_SECONDS, HistoryStore
from sysinsight.storage.models import (
    BucketMetrics,
    DailyMetrics,
    HistoryStats,
    HourlyMetrics,
    UsageSummary,
)
from sysinsight.storage.path_resolver import StoragePathResolver
from sysinsight.storage.retention import RetentionService, RetentionStats

__all__ = [
    "BucketMetrics",
    "DAY_SECONDS",
    "DailyMetrics",
    "HOUR_SECONDS",
    "HistoryStats",
    "HistoryStore",
    "HourlyMetrics",
    "RetentionService",
    "RetentionStats",
    "StoragePathResolver",
    "UsageSummary",
]
