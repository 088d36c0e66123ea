"""
Distributed Tracing with OpenTelemetry.

Spans cover HTTP requests, SQL statements and the promo code flows
(promo_code.check_eligibility, promo_code.record_usage). Export goes to an
OTLP collector; health checks and metric scrapes are not traced.
"""

from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import Tracer

from app.config import settings

# Probe and scrape endpoints, matched by FastAPIInstrumentor as regexes
UNTRACED_URLS = "/health,/metrics"

_provider: TracerProvider | None = None


def build_tracer_provider(sample_ratio: float) -> TracerProvider:
    """Provider tagged with this service, sampling root spans at sample_ratio."""
    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": settings.api_version,
            "service.namespace": "promo-codes",
        }
    )
    return TracerProvider(
        resource=resource,
        sampler=ParentBased(root=TraceIdRatioBased(sample_ratio)),
    )


def setup_tracing() -> TracerProvider | None:
    """
    Install the global tracer provider with an OTLP batch exporter.

    Returns None, leaving the no-op provider in place, when tracing is disabled.
    """
    global _provider

    if not settings.tracing_enabled:
        return None
    if _provider is not None:
        return _provider

    provider = build_tracer_provider(settings.tracing_sample_ratio)
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=settings.otlp_insecure)
        )
    )
    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def shutdown_tracing() -> None:
    """Flush buffered spans on application shutdown."""
    global _provider

    if _provider is None:
        return
    _provider.shutdown()
    _provider = None


def instrument_fastapi(app: Any) -> None:
    if not settings.tracing_enabled:
        return

    FastAPIInstrumentor.instrument_app(app, excluded_urls=UNTRACED_URLS)


def instrument_sqlalchemy(engine: Any) -> None:
    """Trace queries on an async engine (instrumented through its sync engine)."""
    if not settings.tracing_enabled:
        return

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def current_trace_ids() -> tuple[str, str] | None:
    """Hex (trace_id, span_id) of the active span, or None outside a recorded span."""
    context = trace.get_current_span().get_span_context()
    if not context.is_valid:
        return None
    return format(context.trace_id, "032x"), format(context.span_id, "016x")


def get_tracer(name: str) -> Tracer:
    return trace.get_tracer(name)
