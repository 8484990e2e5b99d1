"""System health score: a weighted 0-100 rating of one snapshot."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from sysinsight.insights.rules import BYTES_PER_MB
from sysinsight.models import Snapshot

# Percent weights: CPU, memory, thermal, disk, battery
WEIGHTS = (30, 25, 20, 15, 10)


class HealthStatus(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"

    @classmethod
    def from_score(cls, score: int) -> HealthStatus:
        if score >= 90:
            return cls.EXCELLENT
        if score >= 70:
            return cls.GOOD
        if score >= 50:
            return cls.FAIR
        if score >= 30:
            return cls.POOR
        return cls.CRITICAL


class HealthRecommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    title: str
    description: str
    impact: str  # low, medium, high


class HealthReport(BaseModel):
    """Sub-scores, weighted overall score and recommendations."""

    model_config = ConfigDict(frozen=True)

    overall_score: int
    cpu_score: int
    memory_score: int
    thermal_score: int
    disk_score: int
    battery_score: int
    status: HealthStatus
    recommendations: tuple[HealthRecommendation, ...] = ()


def _banded(value: float) -> int:
    """Piecewise score shared by memory percent and temperature."""
    if value < 50:
        return 100
    if value < 70:
        return int(100 - (value - 50) * 2)
    if value < 85:
        return int(60 - (value - 70) * 3)
    return max(0, int(15 - (value - 85) * 1.5))


def _disk_score(mb_per_sec: float) -> int:
    if mb_per_sec < 50:
        return 100
    if mb_per_sec < 200:
        return int(100 - (mb_per_sec - 50) / 3)
    return max(20, int(50 - (mb_per_sec - 200) / 10))


def calculate_health(snapshot: Snapshot) -> HealthReport:
    """Score a snapshot. Missing metrics score 100."""
    cpu = snapshot.cpu_usage_percent
    cpu_score = 100 if cpu is None else max(0, min(100, int(100 - cpu)))

    memory = snapshot.memory_usage_percent
    memory_score = 100 if memory is None else _banded(memory)

    temperature = snapshot.cpu_temperature_c
    thermal_score = 100 if temperature is None else _banded(temperature)

    disk = snapshot.disk_total_bytes_per_sec
    disk_score = 100 if disk is None else _disk_score(disk / BYTES_PER_MB)

    battery_score = 100

    scores = (cpu_score, memory_score, thermal_score, disk_score, battery_score)
    overall = sum(w * s for w, s in zip(WEIGHTS, scores, strict=True)) // 100

    recommendations: list[HealthRecommendation] = []
    if cpu_score < 50:
        top = snapshot.top_processes[0] if snapshot.top_processes else None
        recommendations.append(
            HealthRecommendation(
                category="cpu",
                title="High CPU Usage",
                description=f"Consider closing {top}" if top else "Close unused applications",
                impact="high",
            )
        )
    if memory_score < 50:
        recommendations.append(
            HealthRecommendation(
                category="memory",
                title="High Memory Pressure",
                description="Close memory-heavy apps",
                impact="high",
            )
        )
    if thermal_score < 50:
        recommendations.append(
            HealthRecommendation(
                category="thermal",
                title="High Temperature",
                description=f"System is running hot ({temperature:.0f}°C)",
                impact="medium",
            )
        )
    if disk_score < 50:
        recommendations.append(
            HealthRecommendation(
                category="disk",
                title="High Disk Activity",
                description="Disk I/O is intensive",
                impact="low",
            )
        )

    return HealthReport(
        overall_score=overall,
        cpu_score=cpu_score,
        memory_score=memory_score,
        thermal_score=thermal_score,
        disk_score=disk_score,
        battery_score=battery_score,
        status=HealthStatus.from_score(overall),
        recommendations=tuple(recommendations),
    )
