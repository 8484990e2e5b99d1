"""OpenTelemetry tracing setup for sysinsight.

This module provides:
- Span creation around storage, analysis and evaluation passes
- An optional console exporter for debugging

Spans are never exported over the network. Until ``setup_telemetry`` runs,
``get_tracer`` hands out the API's default tracer so instrumented code works
unconfigured.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

logger = logging.getLogger(__name__)

_tracer: trace.Tracer | None = None
_provider: TracerProvider | None = None


def setup_telemetry(
    service_name: str = "sysinsight",
    environment: str = "development",
    enable_console_export: bool = False,
    sample_rate: float = 1.0,
) -> trace.Tracer:
    """Setup OpenTelemetry tracing.

    Args:
        service_name: Name of the service
        environment: Environment (development, production)
        enable_console_export: Export spans to console for debugging
        sample_rate: Sampling rate (0.0 to 1.0, 1.0 = all traces)

    Returns:
        Configured tracer
    """
    global _tracer, _provider

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "sysinsight",
            "deployment.environment": environment,
        }
    )

    _provider = TracerProvider(resource=resource, sampler=TraceIdRatioBased(sample_rate))

    if enable_console_export:
        _provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        logger.info("Console span export enabled")

    _tracer = _provider.get_tracer(__name__)

    logger.info(f"Telemetry initialized: {service_name} ({environment})")
    logger.debug(f"Sampling rate: {sample_rate:.0%}")

    return _tracer


def get_tracer() -> trace.Tracer:
    """Get the configured tracer, or the API default when not set up."""
    if _tracer is None:
        return trace.get_tracer(__name__)
    return _tracer


@contextmanager
def trace_operation(
    operation_name: str,
    attributes: dict[str, str] | None = None,
) -> Iterator[trace.Span]:
    """Context manager for tracing an operation.

    Args:
        operation_name: Name of the operation
        attributes: Additional span attributes

    Yields:
        Span object

    Example:
        with trace_operation("retention.trim", {"retention_days": "90"}):
            stats = await retention.trim()
    """
    with get_tracer().start_as_current_span(
        operation_name,
        attributes=attributes or {},
    ) as span:
        try:
            yield span
            span.set_status(trace.StatusCode.OK)
        except Exception as e:
            span.record_exception(e)
            span.set_status(trace.StatusCode.ERROR, str(e))
            raise


def add_span_attributes(attributes: dict[str, str | int | float]) -> None:
    """Add attributes to the current span.

    Args:
        attributes: Dictionary of attributes to add
    """
    current_span = trace.get_current_span()
    if current_span and current_span.is_recording():
        current_span.set_attributes(attributes)


def add_span_event(name: str, attributes: dict[str, str] | None = None) -> None:
    """Add an event to the current span."""
    current_span = trace.get_current_span()
    if current_span and current_span.is_recording():
        current_span.add_event(name, attributes or {})


def traced(
    operation_name: str | None = None,
    attributes: dict[str, str] | None = None,
) -> Callable:
    """Decorator to automatically trace a function.

    Args:
        operation_name: Name of the operation (defaults to function name)
        attributes: Additional span attributes

    Returns:
        Decorated function

    Example:
        @traced("history.summarize")
        async def summarize(self, start, end) -> UsageSummary:
            ...
    """

    def decorator(func: Callable) -> Callable:
        name = operation_name or f"{func.__module__}.{func.__name__}"

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            with get_tracer().start_as_current_span(name, attributes=attributes or {}) as span:
                span.set_attribute("function.name", func.__name__)
                span.set_attribute("function.module", func.__module__)
                try:
                    result = await func(*args, **kwargs)
                    span.set_status(trace.StatusCode.OK)
                    return result
                except Exception as e:
                    span.record_exception(e)
                    span.set_status(trace.StatusCode.ERROR, str(e))
                    raise

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with get_tracer().start_as_current_span(name, attributes=attributes or {}) as span:
                span.set_attribute("function.name", func.__name__)
                span.set_attribute("function.module", func.__module__)
                try:
                    result = func(*args, **kwargs)
                    span.set_status(trace.StatusCode.OK)
                    return result
                except Exception as e:
                    span.record_exception(e)
                    span.set_status(trace.StatusCode.ERROR, str(e))
                    raise

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def shutdown_telemetry() -> None:
    """Flush and shut down the tracer provider, if one was set up."""
    global _tracer, _provider

    if _provider is not None:
        _provider.shutdown()
        logger.info("Telemetry shutdown complete")
    _tracer = None
    _provider = None
