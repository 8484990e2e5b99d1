"""Snapshot model: one timestamped reading of all tracked system metrics.

Every metric field is optional. A collector that cannot read a sensor (no SMC
access, no discrete GPU, fanless machine) leaves the field as ``None`` and
downstream consumers treat it as "not available" rather than zero.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ThermalState(str, Enum):
    """macOS thermal pressure level."""

    NOMINAL = "nominal"
    FAIR = "fair"
    SERIOUS = "serious"
    CRITICAL = "critical"


class Snapshot(BaseModel):
    """Immutable reading of system metrics at a single instant."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # CPU
    cpu_usage_percent: float | None = Field(None, allow_inf_nan=False, ge=0.0, le=100.0)
    cpu_performance_core_percent: float | None = Field(None, allow_inf_nan=False, ge=0.0, le=100.0)
    cpu_efficiency_core_percent: float | None = Field(None, allow_inf_nan=False, ge=0.0, le=100.0)
    cpu_temperature_c: float | None = Field(None, allow_inf_nan=False)

    # GPU
    gpu_usage_percent: float | None = Field(None, allow_inf_nan=False, ge=0.0, le=100.0)
    gpu_temperature_c: float | None = Field(None, allow_inf_nan=False)

    # Memory (bytes)
    memory_total_bytes: int | None = Field(None, ge=0)
    memory_used_bytes: int | None = Field(None, ge=0)
    memory_wired_bytes: int | None = Field(None, ge=0)
    memory_compressed_bytes: int | None = Field(None, ge=0)
    swap_used_bytes: int | None = Field(None, ge=0)

    # Disk and network throughput (bytes per second)
    disk_read_bytes_per_sec: float | None = Field(None, allow_inf_nan=False, ge=0.0)
    disk_write_bytes_per_sec: float | None = Field(None, allow_inf_nan=False, ge=0.0)
    network_in_bytes_per_sec: float | None = Field(None, allow_inf_nan=False, ge=0.0)
    network_out_bytes_per_sec: float | None = Field(None, allow_inf_nan=False, ge=0.0)

    fan_rpm: int | None = Field(None, ge=0)
    thermal_state: ThermalState | None = None

    active_process_count: int | None = Field(None, ge=0)
    top_processes: tuple[str, ...] = ()

    @field_validator("timestamp")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Interpret naive timestamps as UTC and normalise aware ones."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    @property
    def memory_usage_percent(self) -> float | None:
        """Used memory as a percentage of total, or None when unknown."""
        if self.memory_used_bytes is None or not self.memory_total_bytes:
            return None
        return self.memory_used_bytes / self.memory_total_bytes * 100

    @property
    def disk_total_bytes_per_sec(self) -> float | None:
        """Combined read and write throughput, or None when neither is known."""
        if self.disk_read_bytes_per_sec is None and self.disk_write_bytes_per_sec is None:
            return None
        return (self.disk_read_bytes_per_sec or 0.0) + (self.disk_write_bytes_per_sec or 0.0)
