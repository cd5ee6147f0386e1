"""OpenTelemetry tracing setup for userhub.

Spans cover the store round-trips behind the user routes:
  POST /users → UserRepository.add_user()
  GET  /users → UserRepository.list_users()

Spans go to the console in development and to an OTLP collector when an
endpoint is configured.
"""

from __future__ import annotations

import atexit
from functools import wraps
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)

from userhub.config import TracingConfig

_tracer: trace.Tracer | None = None


def setup_tracing(
    config: TracingConfig,
    *,
    service_name: str = "userhub",
    version: str = "v1",
    environment: str = "development",
) -> None:
    """Initialize OpenTelemetry tracing.

    Args:
        config: Exporter selection (console and/or OTLP endpoint).
        service_name: ``service.name`` resource attribute.
        version: ``service.version`` resource attribute.
        environment: ``deployment.environment`` resource attribute.
    """
    global _tracer

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.version": version,
            "deployment.environment": environment,
        }
    )
    provider = TracerProvider(resource=resource)
    for processor in span_processors(config):
        provider.add_span_processor(processor)

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(service_name)

    atexit.register(provider.shutdown)


def span_processors(config: TracingConfig) -> list[SpanProcessor]:
    """One processor per enabled exporter; console and OTLP may both be on."""
    processors: list[SpanProcessor] = []
    if config.console:
        # Synchronous export; the batch processor's thread can outlive stdout.
        processors.append(SimpleSpanProcessor(ConsoleSpanExporter()))
    if config.otlp_endpoint:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        processors.append(BatchSpanProcessor(OTLPSpanExporter(endpoint=config.otlp_endpoint)))
    return processors


def get_tracer() -> trace.Tracer:
    """Return the configured tracer (or a no-op tracer if not initialized)."""
    return _tracer or trace.get_tracer("userhub")


def traced(
    name: str | None = None,
    attributes: dict[str, Any] | None = None,
):
    """Decorator to wrap async functions with OTel spans.

    Args:
        name: Span name. Defaults to the function's qualified name.
        attributes: Static span attributes to set.

    Usage:
        @traced("users.insert", attributes={"db.store": "write"})
        async def add_user(self, name):
            ...
    """

    def decorator(func):
        span_name = name or f"{func.__module__}.{func.__qualname__}"

        @wraps(func)
        async def wrapper(*args, **kwargs):
            tracer = get_tracer()
            with tracer.start_as_current_span(span_name) as span:
                if attributes:
                    for key, value in attributes.items():
                        span.set_attribute(key, value)
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    span.set_attribute("error", True)
                    span.set_attribute("error.message", str(exc))
                    raise

        return wrapper

    return decorator
