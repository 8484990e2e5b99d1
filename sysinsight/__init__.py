"""sysinsight - metrics history and insight inference for system monitors."""

from sysinsight.errors import StorageError, SysInsightError

__all__ = ["StorageError", "SysInsightError"]
