"""sysinsight exception hierarchy."""


class SysInsightError(Exception):
    """Base class for sysinsight errors."""


class StorageError(SysInsightError):
    """Persistence unavailable or failing. Non-fatal: callers log and continue."""
