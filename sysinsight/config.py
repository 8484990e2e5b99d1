"""sysinsight configuration management with environment variable overrides.

This module provides centralized configuration management with support for:
- Environment variable overrides (highest priority)
- YAML config file loading
- Pydantic validation of thresholds and analysis parameters
- Path resolution with StoragePathResolver

Priority order for configuration values:
1. Environment variables (SYSINSIGHT_*, nested with ``__``)
2. YAML config file
3. StoragePathResolver for paths
4. Pydantic defaults (lowest priority)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from sysinsight.storage.path_resolver import StoragePathResolver

logger = logging.getLogger(__name__)

THRESHOLD_MIN = 50.0
THRESHOLD_MAX = 100.0


class StorageConfig(BaseModel):
    """History storage configuration.

    Attributes:
        path: DuckDB file (":memory:" for an ephemeral store)
        retention_days: Snapshots older than this are trimmed
        trim_chunk_size: Rows deleted per retention transaction
        retention_interval_seconds: Delay between background trim passes
    """

    path: str | None = None  # Will be resolved by model_validator
    retention_days: int = Field(default=90, ge=1)
    trim_chunk_size: int = Field(default=1000, ge=1)
    retention_interval_seconds: float = Field(default=3600.0, gt=0)

    @model_validator(mode="after")
    def resolve_paths(self) -> StorageConfig:
        """Resolve database path using StoragePathResolver."""
        if self.path is None:
            self.path = str(StoragePathResolver().get_history_db_path())
        return self


class ThresholdConfig(BaseModel):
    """Live threshold rule configuration.

    Attributes:
        cpu_percent: CPU usage warning threshold
        memory_percent: Memory usage warning threshold
        gpu_percent: GPU usage warning threshold
        temperature_c: CPU temperature warning threshold
        critical_margin: Points above a threshold at which severity becomes critical
        io_mb_per_sec: Combined disk throughput considered a bottleneck
    """

    cpu_percent: float = Field(default=80.0, ge=THRESHOLD_MIN, le=THRESHOLD_MAX)
    memory_percent: float = Field(default=75.0, ge=THRESHOLD_MIN, le=THRESHOLD_MAX)
    gpu_percent: float = Field(default=80.0, ge=THRESHOLD_MIN, le=THRESHOLD_MAX)
    temperature_c: float = Field(default=80.0, ge=THRESHOLD_MIN, le=THRESHOLD_MAX)
    critical_margin: float = Field(default=15.0, gt=0)
    io_mb_per_sec: float = Field(default=100.0, gt=0)


class AnalysisConfig(BaseModel):
    """Trend analysis configuration.

    Attributes:
        pattern_window_days: History window for patterns and anomalies
        anomaly_window: Trailing samples forming the expected range
        anomaly_min_samples: Fewer trailing samples than this yields no verdict
        anomaly_multiplier: Standard deviations (k) for the expected range
        leak_window_days: Trailing days fitted for leak detection
        leak_min_days: Minimum daily points before a leak can be reported
        leak_min_growth_rate: Minimum slope/mean per day (0.01 = 1 %/day)
        leak_min_r_squared: Minimum goodness of fit
        sudden_change_threshold: Day-over-day CPU change (points) flagged as sudden
        analysis_interval_seconds: Delay between background analysis passes
    """

    pattern_window_days: int = Field(default=30, ge=1)
    anomaly_window: int = Field(default=50, ge=2)
    anomaly_min_samples: int = Field(default=10, ge=2)
    anomaly_multiplier: float = Field(default=2.0, gt=0)
    leak_window_days: int = Field(default=14, ge=2)
    leak_min_days: int = Field(default=7, ge=2)
    leak_min_growth_rate: float = Field(default=0.01, ge=0)
    leak_min_r_squared: float = Field(default=0.7, ge=0, le=1)
    sudden_change_threshold: float = Field(default=20.0, gt=0)
    analysis_interval_seconds: float = Field(default=900.0, gt=0)

    @model_validator(mode="after")
    def check_windows(self) -> AnalysisConfig:
        if self.anomaly_min_samples > self.anomaly_window:
            raise ValueError("anomaly_min_samples cannot exceed anomaly_window")
        if self.leak_min_days > self.leak_window_days:
            raise ValueError("leak_min_days cannot exceed leak_window_days")
        return self


class EngineConfig(BaseModel):
    """Insight engine configuration.

    Attributes:
        history_limit: Resolved insights kept in history
        thermal_window: Recent temperatures kept for the throttle forecast
        subscriber_queue_size: Events buffered per subscriber
    """

    history_limit: int = Field(default=100, ge=1)
    thermal_window: int = Field(default=10, ge=2)
    subscriber_queue_size: int = Field(default=100, ge=1)


class SysInsightConfig(BaseSettings):
    """Main sysinsight configuration.

    This class loads configuration from multiple sources:
    1. Environment variables (SYSINSIGHT_*)
    2. YAML config file (via ``get_config(path)``)
    3. Pydantic defaults

    Attributes:
        storage: History storage configuration
        thresholds: Live rule thresholds
        analysis: Trend analysis parameters
        engine: Insight engine parameters
        debug: Enable debug logging
        console_tracing: Print spans to stdout
        environment: Deployment environment label
    """

    storage: StorageConfig = Field(default_factory=StorageConfig)
    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)

    debug: bool = False
    console_tracing: bool = False
    environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        env_prefix="sysinsight_",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment beats values loaded from the YAML file (passed as init kwargs).
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def load_config_from_file(config_path: str | Path) -> dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration dictionary (empty when the file is missing or unreadable)
    """
    path = Path(config_path).expanduser()
    if not path.exists():
        logger.warning(f"Config file not found: {config_path}")
        return {}

    try:
        with open(path) as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load config from {config_path}: {e}")
        return {}

    if not isinstance(config, dict):
        logger.error(f"Config file {config_path} does not contain a mapping")
        return {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def get_config(config_path: str | Path | None = None) -> SysInsightConfig:
    """Get configuration instance.

    Args:
        config_path: Optional path to YAML config file

    Returns:
        SysInsightConfig instance

    Raises:
        pydantic.ValidationError: If a value is out of range
    """
    if config_path:
        file_config = load_config_from_file(config_path)
        return SysInsightConfig(**file_config)

    return SysInsightConfig()
