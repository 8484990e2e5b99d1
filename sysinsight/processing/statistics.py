"""Closed-form statistics used by trend analysis.

Every function here is pure and returns an empty or ``None`` result on
insufficient input instead of raising.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime

import numpy as np

from sysinsight.models import AnomalyMetric, Severity, TrendAnomaly

# Standard deviations below this are treated as a constant series.
STD_EPSILON = 1e-9


@dataclass(frozen=True)
class LinearFit:
    """Least-squares line ``y = slope * x + intercept``."""

    slope: float
    intercept: float
    r_squared: float
    mean: float
    points: int


def linear_fit(values: Sequence[float], x: Sequence[float] | None = None) -> LinearFit | None:
    """Fit a straight line to ``values``.

    Args:
        values: Observed values
        x: Abscissae (defaults to 0, 1, 2, ...)

    Returns:
        LinearFit, or None with fewer than two points or a degenerate x axis
    """
    if len(values) < 2:
        return None

    y = np.asarray(values, dtype=np.float64)
    xs = np.arange(len(y), dtype=np.float64) if x is None else np.asarray(x, dtype=np.float64)
    if len(xs) != len(y) or np.ptp(xs) == 0:
        return None

    coeffs = np.polyfit(xs, y, 1)
    y_hat = np.polyval(coeffs, xs)
    y_bar = float(np.mean(y))
    ss_tot = float(np.sum((y - y_bar) ** 2))
    ss_res = float(np.sum((y - y_hat) ** 2))
    r_squared = 1.0 - ss_res / ss_tot if ss_tot > 0 else 0.0

    return LinearFit(
        slope=float(coeffs[0]),
        intercept=float(coeffs[1]),
        r_squared=max(0.0, min(1.0, r_squared)),
        mean=y_bar,
        points=len(y),
    )


def detect_series_anomalies(
    values: Sequence[float],
    timestamps: Sequence[datetime],
    metric: AnomalyMetric,
    window: int = 50,
    min_samples: int = 10,
    multiplier: float = 2.0,
) -> list[TrendAnomaly]:
    """Flag samples outside the rolling range ``mean ± multiplier·σ``.

    The range for sample ``i`` comes from the up to ``window`` samples before
    it (population σ). Samples with fewer than ``min_samples`` predecessors
    are not judged. ``|z| > multiplier`` is a warning, ``|z| > 2·multiplier``
    is critical.

    Args:
        values: Series values, oldest first
        timestamps: Timestamp of each value
        metric: Series the values belong to
        window: Trailing window length
        min_samples: Minimum trailing samples for a verdict
        multiplier: Standard deviations defining the expected range

    Returns:
        Anomalies in series order
    """
    if len(values) != len(timestamps):
        raise ValueError("values and timestamps must have the same length")

    series = np.asarray(values, dtype=np.float64)
    # Non-finite readings are neither judged nor part of any window
    finite = np.isfinite(series)
    if not finite.all():
        timestamps = [ts for ts, ok in zip(timestamps, finite, strict=True) if ok]
        series = series[finite]
    anomalies: list[TrendAnomaly] = []

    for i in range(min_samples, len(series)):
        trailing = series[max(0, i - window) : i]
        if len(trailing) < min_samples:
            continue

        mean = float(np.mean(trailing))
        std = float(np.std(trailing))
        if std < STD_EPSILON:
            continue

        z = (float(series[i]) - mean) / std
        if abs(z) <= multiplier:
            continue

        anomalies.append(
            TrendAnomaly(
                date=timestamps[i],
                metric_type=metric,
                observed_value=float(series[i]),
                expected_min=mean - multiplier * std,
                expected_max=mean + multiplier * std,
                deviation=z,
                severity=Severity.CRITICAL if abs(z) > 2 * multiplier else Severity.WARNING,
            )
        )

    return anomalies


def detect_sudden_changes(
    values: Sequence[float],
    timestamps: Sequence[datetime],
    threshold: float = 20.0,
) -> list[TrendAnomaly]:
    """Flag day-over-day changes larger than ``threshold`` points.

    Changes above ``1.5 × threshold`` are critical.
    """
    anomalies: list[TrendAnomaly] = []
    for i in range(1, min(len(values), len(timestamps))):
        change = abs(values[i] - values[i - 1])
        if change <= threshold:
            continue
        anomalies.append(
            TrendAnomaly(
                date=timestamps[i],
                metric_type=AnomalyMetric.SUDDEN_CHANGE,
                observed_value=change,
                expected_min=0.0,
                expected_max=threshold / 2,
                deviation=change / threshold,
                severity=Severity.CRITICAL if change > threshold * 1.5 else Severity.WARNING,
            )
        )
    return anomalies


def peak_hours(hour_averages: Mapping[int, float], stddev_factor: float = 1.0) -> list[int]:
    """Hours whose average exceeds ``mean + stddev_factor·σ`` of all hours.

    Falls back to the single highest hour when fewer than two hours qualify.
    Ties are broken by the earlier hour.
    """
    if not hour_averages:
        return []

    avgs = np.asarray(list(hour_averages.values()), dtype=np.float64)
    cutoff = float(np.mean(avgs)) + stddev_factor * float(np.std(avgs))
    peaks = sorted(hour for hour, avg in hour_averages.items() if avg > cutoff)

    if len(peaks) < 2:
        highest = max(sorted(hour_averages), key=lambda hour: hour_averages[hour])
        return [highest]
    return peaks


def weighted_mean(values: Sequence[float], weights: Sequence[float]) -> float:
    """Weighted average, 0.0 when the weights sum to zero."""
    total = float(np.sum(weights)) if len(weights) else 0.0
    if total <= 0:
        return 0.0
    return float(np.average(np.asarray(values, dtype=np.float64), weights=weights))
