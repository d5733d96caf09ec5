"""Tracing setup and a helper for timing pipeline stages."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Status, StatusCode

from assessgen.correlation import get_correlation_id


def init_otel(service_name: str, *, console_export: bool = False) -> TracerProvider:
    """Install the process tracer provider.

    TODO: add an OTLP span exporter once a collector is deployed next to the service.
    """

    provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: service_name}))
    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    return provider


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


@contextmanager
def traced(tracer: trace.Tracer, name: str, **attributes: object) -> Iterator[trace.Span]:
    """Span tagged with the correlation id; errors mark it failed and propagate."""

    with tracer.start_as_current_span(name, record_exception=False) as span:
        correlation_id = get_correlation_id()
        if correlation_id:
            span.set_attribute("correlation_id", correlation_id)
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, value if isinstance(value, (str, bool, int, float)) else str(value))
        try:
            yield span
        except BaseException as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, type(exc).__name__))
            raise
