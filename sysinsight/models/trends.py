"""Trend analysis result models."""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field

from sysinsight.models.insight import Severity


class AnalysisPeriod(str, Enum):
    """Named summary period ending now."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @property
    def duration(self) -> timedelta:
        return _PERIOD_DURATIONS[self]


_PERIOD_DURATIONS = {
    AnalysisPeriod.DAY: timedelta(hours=24),
    AnalysisPeriod.WEEK: timedelta(days=7),
    AnalysisPeriod.MONTH: timedelta(days=30),
}


class DailyPattern(BaseModel):
    """Average load for one hour of the day (UTC) across the pattern window."""

    model_config = ConfigDict(frozen=True)

    hour: int = Field(..., ge=0, le=23)
    avg_cpu: float
    avg_memory: float
    avg_gpu: float
    sample_count: int

    @computed_field
    @property
    def label(self) -> str:
        return f"{self.hour:02d}:00"


class WeeklyPattern(BaseModel):
    """Average load for one weekday (0 = Monday) across the pattern window."""

    model_config = ConfigDict(frozen=True)

    weekday: int = Field(..., ge=0, le=6)
    avg_cpu: float
    avg_memory: float
    avg_gpu: float
    sample_count: int

    @computed_field
    @property
    def label(self) -> str:
        return calendar.day_name[self.weekday]


class AnomalyMetric(str, Enum):
    """Series an anomaly was found in."""

    CPU = "cpu"
    MEMORY = "memory"
    GPU = "gpu"
    TEMPERATURE = "temperature"
    SUDDEN_CHANGE = "sudden_change"


class TrendAnomaly(BaseModel):
    """A sample outside its adaptively computed expected range."""

    model_config = ConfigDict(frozen=True)

    date: datetime
    metric_type: AnomalyMetric
    observed_value: float
    expected_min: float
    expected_max: float
    deviation: float  # signed, in standard deviations
    severity: Severity

    @property
    def description(self) -> str:
        direction = "above" if self.observed_value > self.expected_max else "below"
        return (
            f"{self.metric_type.value} {self.observed_value:.1f} is {direction} the expected "
            f"range {self.expected_min:.1f}-{self.expected_max:.1f}"
        )


class MemoryLeakSuspect(BaseModel):
    """Sustained, well-fitted upward trend in daily memory usage."""

    model_config = ConfigDict(frozen=True)

    description: str
    growth_rate_per_day: float  # slope / mean, e.g. 0.02 = 2 %/day
    confidence: float = Field(..., ge=0.0, le=1.0)
    slope_bytes_per_day: float
    r_squared: float
    days_observed: int
    detected_at: datetime


class PredictedMetrics(BaseModel):
    """Expected load for an upcoming hour based on the daily pattern."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    predicted_cpu: float
    predicted_memory: float
    predicted_gpu: float
    confidence: float = Field(..., ge=0.0, le=1.0)
