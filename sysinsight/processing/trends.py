"""Trend analysis over the metrics history.

Turns raw history into usage summaries, recurring daily and weekly load
patterns, peak-usage hours, statistical anomalies and memory-leak suspects.
Every pass is explicitly triggered; nothing here runs per snapshot.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sysinsight.config import AnalysisConfig
from sysinsight.models import (
    AnalysisPeriod,
    AnomalyMetric,
    DailyPattern,
    MemoryLeakSuspect,
    PredictedMetrics,
    TrendAnomaly,
    WeeklyPattern,
)
from sysinsight.monitoring import metrics
from sysinsight.observability import add_span_attributes, trace_operation, traced
from sysinsight.processing.statistics import (
    detect_series_anomalies,
    detect_sudden_changes,
    linear_fit,
    peak_hours,
    weighted_mean,
)

if TYPE_CHECKING:
    from sysinsight.storage.history_store import HistoryStore
    from sysinsight.storage.models import DailyMetrics, HourlyMetrics, UsageSummary

logger = logging.getLogger(__name__)

# Hourly bucket field analysed for each anomaly series.
_ANOMALY_SERIES: tuple[tuple[AnomalyMetric, str], ...] = (
    (AnomalyMetric.CPU, "avg_cpu"),
    (AnomalyMetric.MEMORY, "avg_memory_percent"),
    (AnomalyMetric.GPU, "avg_gpu"),
    (AnomalyMetric.TEMPERATURE, "avg_temperature"),
)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class TrendAnalyzer:
    """Computes and holds the latest trend analysis results.

    Read properties return tuples so callers never share the analyzer's
    internal lists.
    """

    def __init__(
        self,
        store: HistoryStore,
        config: AnalysisConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize trend analyzer.

        Args:
            store: History store to read from
            config: Analysis parameters (defaults apply when omitted)
            clock: Returns the current UTC time (injectable for tests)
        """
        self.store = store
        self.config = config or AnalysisConfig()
        self._clock = clock or (lambda: datetime.now(UTC))

        self._daily_patterns: list[DailyPattern] = []
        self._weekly_patterns: list[WeeklyPattern] = []
        self._peak_usage_hours: list[int] = []
        self._anomalies: list[TrendAnomaly] = []
        self._memory_leak_suspects: list[MemoryLeakSuspect] = []
        self._is_analyzing = False
        self._last_analysis_at: datetime | None = None

    @property
    def daily_patterns(self) -> tuple[DailyPattern, ...]:
        return tuple(self._daily_patterns)

    @property
    def weekly_patterns(self) -> tuple[WeeklyPattern, ...]:
        return tuple(self._weekly_patterns)

    @property
    def peak_usage_hours(self) -> tuple[int, ...]:
        return tuple(self._peak_usage_hours)

    @property
    def anomalies(self) -> tuple[TrendAnomaly, ...]:
        return tuple(self._anomalies)

    @property
    def memory_leak_suspects(self) -> tuple[MemoryLeakSuspect, ...]:
        return tuple(self._memory_leak_suspects)

    @property
    def is_analyzing(self) -> bool:
        return self._is_analyzing

    @property
    def last_analysis_at(self) -> datetime | None:
        return self._last_analysis_at

    def _pattern_range(self) -> tuple[datetime, datetime]:
        end = self._clock()
        return end - timedelta(days=self.config.pattern_window_days), end

    async def usage_summary(
        self,
        period: AnalysisPeriod | timedelta = AnalysisPeriod.DAY,
        end: datetime | None = None,
    ) -> UsageSummary:
        """Mean and max per metric over the period ending at ``end``.

        Args:
            period: Named period or explicit duration
            end: Period end (defaults to now)

        Returns:
            UsageSummary whose sample_count counts snapshots
        """
        end = end or self._clock()
        duration = period.duration if isinstance(period, AnalysisPeriod) else period
        if duration <= timedelta(0):
            return await self.store.summarize(end, end)
        return await self.store.summarize(end - duration, end)

    async def analyze_weekly_patterns(
        self, hourly: Sequence[HourlyMetrics] | None = None
    ) -> list[WeeklyPattern]:
        """Average load per weekday across the pattern window.

        Hourly buckets are weighted by their sample count, so each weekday's
        average equals the mean over its underlying snapshots.
        """
        if hourly is None:
            hourly = await self.store.hourly_averages(*self._pattern_range())

        grouped: dict[int, list[HourlyMetrics]] = defaultdict(list)
        for bucket in hourly:
            grouped[bucket.bucket_start.weekday()].append(bucket)

        patterns = []
        for weekday in sorted(grouped):
            buckets = grouped[weekday]
            patterns.append(
                WeeklyPattern(
                    weekday=weekday,
                    avg_cpu=self._weighted(buckets, "avg_cpu"),
                    avg_memory=self._weighted(buckets, "avg_memory"),
                    avg_gpu=self._weighted(buckets, "avg_gpu"),
                    sample_count=sum(b.sample_count for b in buckets),
                )
            )

        self._weekly_patterns = patterns
        return list(patterns)

    @staticmethod
    def _weighted(buckets: Sequence[HourlyMetrics], field: str) -> float:
        pairs = [(getattr(b, field), b.sample_count) for b in buckets if getattr(b, field) is not None]
        return weighted_mean([v for v, _ in pairs], [w for _, w in pairs])

    async def analyze_monthly_patterns(
        self, hourly: Sequence[HourlyMetrics] | None = None
    ) -> list[DailyPattern]:
        """Average load per hour of day across the pattern window.

        Also recomputes ``peak_usage_hours`` from the per-hour CPU averages.
        """
        if hourly is None:
            hourly = await self.store.hourly_averages(*self._pattern_range())

        grouped: dict[int, list[HourlyMetrics]] = defaultdict(list)
        for bucket in hourly:
            grouped[bucket.bucket_start.hour].append(bucket)

        patterns = []
        for hour in sorted(grouped):
            buckets = grouped[hour]
            patterns.append(
                DailyPattern(
                    hour=hour,
                    avg_cpu=_mean([b.avg_cpu for b in buckets if b.avg_cpu is not None]),
                    avg_memory=_mean([b.avg_memory for b in buckets if b.avg_memory is not None]),
                    avg_gpu=_mean([b.avg_gpu for b in buckets if b.avg_gpu is not None]),
                    sample_count=sum(b.sample_count for b in buckets),
                )
            )

        self._daily_patterns = patterns
        self._peak_usage_hours = peak_hours({p.hour: p.avg_cpu for p in patterns})
        return list(patterns)

    @traced("trends.detect_anomalies")
    async def detect_anomalies(
        self,
        hourly: Sequence[HourlyMetrics] | None = None,
        daily: Sequence[DailyMetrics] | None = None,
    ) -> list[TrendAnomaly]:
        """Recompute anomalies for the hourly CPU, memory, GPU and temperature series.

        Day-over-day CPU jumps on the daily series are reported as sudden changes.
        """
        start, end = self._pattern_range()
        if hourly is None:
            hourly = await self.store.hourly_averages(start, end)
        if daily is None:
            daily = await self.store.daily_averages(start, end)

        found: list[TrendAnomaly] = []
        for metric, field in _ANOMALY_SERIES:
            points = [(b.bucket_start, getattr(b, field)) for b in hourly if getattr(b, field) is not None]
            found.extend(
                detect_series_anomalies(
                    [v for _, v in points],
                    [t for t, _ in points],
                    metric,
                    window=self.config.anomaly_window,
                    min_samples=self.config.anomaly_min_samples,
                    multiplier=self.config.anomaly_multiplier,
                )
            )

        daily_cpu = [(d.bucket_start, d.avg_cpu) for d in daily if d.avg_cpu is not None]
        found.extend(
            detect_sudden_changes(
                [v for _, v in daily_cpu],
                [t for t, _ in daily_cpu],
                threshold=self.config.sudden_change_threshold,
            )
        )

        found.sort(key=lambda a: a.date)
        self._anomalies = found
        metrics.anomalies_detected.set(len(found))
        add_span_attributes({"trends.anomalies": len(found)})

        if found:
            logger.info(f"Detected {len(found)} anomalies over the last {self.config.pattern_window_days} days")
        return list(found)

    @traced("trends.detect_memory_leaks")
    async def detect_memory_leaks(
        self, daily: Sequence[DailyMetrics] | None = None
    ) -> list[MemoryLeakSuspect]:
        """Fit a line to daily average memory and report sustained growth.

        A suspect needs at least ``leak_min_days`` points, a growth rate
        (slope / mean) above ``leak_min_growth_rate`` and R² of at least
        ``leak_min_r_squared``.
        """
        now = self._clock()
        if daily is None:
            daily = await self.store.daily_averages(
                now - timedelta(days=self.config.leak_window_days), now
            )

        points = [(d.bucket_start, d.avg_memory) for d in daily if d.avg_memory is not None]
        suspects: list[MemoryLeakSuspect] = []

        if len(points) < self.config.leak_min_days:
            logger.debug(f"Insufficient daily history for leak detection: {len(points)} days")
        else:
            first = points[0][0]
            days = [(t - first).total_seconds() / 86400 for t, _ in points]
            fit = linear_fit([v for _, v in points], days)

            if fit is not None and fit.mean > 0:
                growth_rate = fit.slope / fit.mean
                if (
                    growth_rate > self.config.leak_min_growth_rate
                    and fit.r_squared >= self.config.leak_min_r_squared
                ):
                    suspects.append(
                        MemoryLeakSuspect(
                            description=(
                                f"Memory usage has grown {growth_rate:.1%} per day "
                                f"over the last {len(points)} days"
                            ),
                            growth_rate_per_day=growth_rate,
                            confidence=fit.r_squared,
                            slope_bytes_per_day=fit.slope,
                            r_squared=fit.r_squared,
                            days_observed=len(points),
                            detected_at=now,
                        )
                    )
                    logger.warning(
                        f"Memory leak suspect: {growth_rate:.2%}/day (R²={fit.r_squared:.2f})"
                    )

        self._memory_leak_suspects = suspects
        metrics.leak_suspects_detected.set(len(suspects))
        return list(suspects)

    async def analyze(self) -> bool:
        """Run one full analysis pass.

        A call made while another pass is in flight returns immediately.

        Returns:
            True if a pass ran, False if it was skipped
        """
        if self._is_analyzing:
            logger.debug("Analysis already in progress, skipping")
            metrics.analysis_runs_total.labels(status="skipped").inc()
            return False

        self._is_analyzing = True
        try:
            with trace_operation("trends.analyze"), metrics.analysis_duration_seconds.time():
                start, end = self._pattern_range()
                hourly = await self.store.hourly_averages(start, end)
                daily = await self.store.daily_averages(start, end)

                await self.analyze_weekly_patterns(hourly)
                await self.analyze_monthly_patterns(hourly)
                await self.detect_anomalies(hourly, daily)
                await self.detect_memory_leaks()

            self._last_analysis_at = end
            metrics.analysis_runs_total.labels(status="completed").inc()
            logger.info(
                f"Analysis complete: {len(hourly)} hourly buckets, "
                f"{len(self._anomalies)} anomalies, {len(self._memory_leak_suspects)} leak suspects"
            )
        except Exception:
            metrics.analysis_runs_total.labels(status="failed").inc()
            raise
        finally:
            self._is_analyzing = False

        return True

    def predict_next_hour(self) -> PredictedMetrics | None:
        """Expected load for the coming hour from the daily pattern.

        Returns:
            Prediction, or None when no pattern covers the next hour
        """
        if not self._daily_patterns:
            return None

        now = self._clock()
        next_hour = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
        pattern = next((p for p in self._daily_patterns if p.hour == next_hour.hour), None)
        if pattern is None:
            return None

        return PredictedMetrics(
            timestamp=next_hour,
            predicted_cpu=pattern.avg_cpu,
            predicted_memory=pattern.avg_memory,
            predicted_gpu=pattern.avg_gpu,
            confidence=min(0.95, pattern.sample_count / 30),
        )
