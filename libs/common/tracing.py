"""Distributed tracing configuration for the asset search services.

Wraps OpenTelemetry setup with an OTLP/HTTP exporter (Jaeger and most
collectors accept OTLP directly) and optional auto-instrumentation for the
Redis and HTTPX clients. Also provides a scoped span context manager and a
small search-specific tracer so span names stay consistent.

Without ``configure_tracing`` the global OpenTelemetry provider is a no-op,
so spans opened by ``SearchTracer`` cost nothing in tests or when tracing is
disabled.
"""

import os
from typing import Optional

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

logger = structlog.get_logger("tracing")


def configure_tracing(
    service_name: str,
    otlp_endpoint: str = "http://localhost:4318/v1/traces",
    enable_instrumentation: bool = True
) -> Optional[trace.Tracer]:
    """Configure distributed tracing for a service.

    Parameters
    - service_name: Logical service identifier used in trace resources
    - otlp_endpoint: Collector endpoint for exporting spans
    - enable_instrumentation: Toggle built-in instrumentation hooks

    Returns
    - A tracer instance for ad-hoc span creation, or ``None`` on failure
    """
    try:
        tracer_provider = TracerProvider(
            resource=Resource.create({
                "service.name": service_name,
                "service.version": "0.1.0",
                "deployment.environment": os.getenv("ML_ENV", "local")
            })
        )
        tracer_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
        )
        trace.set_tracer_provider(tracer_provider)

        tracer = trace.get_tracer(service_name)

        if enable_instrumentation:
            try:
                RedisInstrumentor().instrument()
                HTTPXClientInstrumentor().instrument()
                logger.info("Automatic instrumentation enabled")
            except Exception as e:
                # Partial failure is acceptable; log but continue.
                logger.warning("Failed to enable some instrumentation", error=str(e))

        logger.info(
            "Distributed tracing configured",
            service_name=service_name,
            otlp_endpoint=otlp_endpoint
        )
        return tracer

    except Exception as e:
        logger.error("Failed to configure tracing", error=str(e))
        return None


class TracingContext:
    """Context manager for tracing operations.

    Starts a span on entry and ensures it ends, recording success or error.
    """

    def __init__(self, tracer: trace.Tracer, operation_name: str, **attributes):
        self.tracer = tracer
        self.operation_name = operation_name
        self.attributes = attributes
        self.span: Optional[trace.Span] = None

    def __enter__(self) -> trace.Span:
        self.span = self.tracer.start_span(self.operation_name)
        for key, value in self.attributes.items():
            if value is not None:
                self.span.set_attribute(key, value if isinstance(value, (bool, int, float)) else str(value))
        return self.span

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.span:
            if exc_type is not None:
                self.span.set_status(Status(StatusCode.ERROR, f"{exc_type.__name__}: {exc_val}"))
            else:
                self.span.set_status(Status(StatusCode.OK))
            self.span.end()


class SearchTracer:
    """Search-specific span helpers."""

    def __init__(self, service_name: str = "search-service"):
        self.service_name = service_name
        self.tracer = trace.get_tracer(service_name)

    def trace_search_query(self, search_mode: str, campaign_id: str, limit: int, **attributes):
        return TracingContext(
            self.tracer,
            "search.query",
            search_mode=search_mode,
            campaign_id=campaign_id,
            limit=limit,
            **attributes
        )

    def trace_embedding(self, query_length: int, **attributes):
        return TracingContext(self.tracer, "search.embedding", query_length=query_length, **attributes)


def get_search_tracer(service_name: str = "search-service") -> SearchTracer:
    """Get the search tracer for a service."""
    return SearchTracer(service_name)
