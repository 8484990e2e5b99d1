"""Observability module for OpenTelemetry tracing."""

from sysinsight.observability.tracing import (
    add_span_attributes,
    add_span_event,
    get_tracer,
    setup_telemetry,
    shutdown_telemetry,
    trace_operation,
    traced,
)

__all__ = [
    "add_span_attributes",
    "add_span_event",
    "get_tracer",
    "setup_telemetry",
    "shutdown_telemetry",
    "trace_operation",
    "traced",
]
