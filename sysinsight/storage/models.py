"""Aggregate models returned by the history store.

These are computed on read and never persisted.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class BucketMetrics(BaseModel):
    """Averages over one fixed-width bucket ``[bucket_start, bucket_start + period)``.

    A field is None when no snapshot in the bucket carried it.
    """

    model_config = ConfigDict(frozen=True)

    bucket_start: datetime
    avg_cpu: float | None = None
    avg_memory: float | None = None  # bytes
    avg_memory_percent: float | None = None
    avg_gpu: float | None = None
    avg_temperature: float | None = None
    max_cpu: float | None = None
    max_memory: float | None = None
    max_temperature: float | None = None
    sample_count: int = 0


class HourlyMetrics(BucketMetrics):
    """Hour-aligned bucket aggregate."""


class DailyMetrics(BucketMetrics):
    """Day-aligned (UTC midnight) bucket aggregate."""


class UsageSummary(BaseModel):
    """Mean/max statistics over a period. ``sample_count`` counts snapshots."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    avg_cpu: float = 0.0
    max_cpu: float = 0.0
    min_cpu: float = 0.0
    avg_memory: float = 0.0
    max_memory: float = 0.0
    avg_gpu: float = 0.0
    max_gpu: float = 0.0
    avg_temperature: float = 0.0
    max_temperature: float = 0.0
    sample_count: int = 0

    @classmethod
    def empty(cls, start: datetime, end: datetime) -> UsageSummary:
        return cls(start=start, end=end)

    @property
    def is_empty(self) -> bool:
        return self.sample_count == 0


class HistoryStats(BaseModel):
    """Size and time span of the stored history."""

    model_config = ConfigDict(frozen=True)

    total_snapshots: int = 0
    oldest: datetime | None = None
    newest: datetime | None = None
