"""sysinsight monitoring: in-process Prometheus metrics."""

from sysinsight.monitoring import metrics

__all__ = ["metrics"]
