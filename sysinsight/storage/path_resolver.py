"""Storage path resolver for sysinsight.

Resolves where the metrics history database lives: the platform data directory
for a local install, ``/tmp`` while tests run, or an explicit override.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Final

logger = logging.getLogger(__name__)

IS_WINDOWS: Final = sys.platform == "win32"
IS_MACOS: Final = sys.platform == "darwin"

HISTORY_DB_NAME: Final = "metrics_history.duckdb"


class StoragePathResolver:
    """Resolves storage paths based on deployment environment."""

    def __init__(self, env: str | None = None, project_dir: Path | None = None) -> None:
        """Initialize path resolver.

        Args:
            env: Force specific environment ('local', 'development', 'test')
            project_dir: Current project directory (defaults to cwd)
        """
        self.env = env or self._detect_environment()
        self.project_dir = project_dir or Path.cwd()
        self.base_path = self._resolve_base_path()

    def _detect_environment(self) -> str:
        """Auto-detect deployment environment.

        Returns:
            Environment type: 'local', 'development', or 'test'
        """
        if env_var := os.getenv("SYSINSIGHT_ENV"):
            return env_var

        if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
            return "test"

        return "local"

    def _resolve_base_path(self) -> Path:
        """Resolve base storage path by environment."""
        if override := os.getenv("SYSINSIGHT_DATA_PATH"):
            return Path(override)

        if self.env == "local":
            return self._get_platform_data_path()

        if self.env == "development":
            return self.project_dir / ".sysinsight" / "data"

        if self.env == "test":
            return Path("/tmp") / "sysinsight" / "test"

        logger.warning(f"Unknown environment '{self.env}', using local paths")
        return self._get_platform_data_path()

    def _get_platform_data_path(self) -> Path:
        if IS_WINDOWS:
            local_app_data = os.getenv("LOCALAPPDATA")
            if local_app_data:
                return Path(local_app_data) / "sysinsight"
            return Path.home() / ".sysinsight" / "data"

        xdg_data = os.getenv("XDG_DATA_HOME")
        if xdg_data:
            return Path(xdg_data) / "sysinsight"

        if IS_MACOS:
            return Path.home() / "Library" / "Application Support" / "sysinsight"

        return Path.home() / ".local" / "share" / "sysinsight"

    def get_history_db_path(self) -> Path:
        """Get the metrics history database path.

        Returns:
            Path to the DuckDB history file
        """
        if override := os.getenv("SYSINSIGHT_DB_PATH"):
            return Path(override)

        return self.base_path / "history" / HISTORY_DB_NAME

    def ensure_directories(self) -> None:
        """Create the directory holding the history database."""
        db_dir = self.get_history_db_path().parent
        db_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Ensured storage directory: {db_dir}")
