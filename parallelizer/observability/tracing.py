"""
OpenTelemetry spans for prepare, batch sends, task execution and status reads.

Spans are always recorded so log lines carry trace ids; they only leave the
process when PARALLELIZER_OTEL_EXPORTER_OTLP_ENDPOINT is set.
"""

from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Tracer

from parallelizer import __version__
from parallelizer.config import Settings, get_settings

_provider: TracerProvider | None = None
_tracer: Tracer | None = None


def _build_provider(settings: Settings) -> TracerProvider:
    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.otel_service_name,
                "service.version": __version__,
                "parallelizer.worker_id": settings.worker_id,
            }
        )
    )
    if settings.otel_exporter_otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(
                OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint, insecure=True)
            )
        )
    return provider


def setup_tracing() -> Tracer:
    """
    Build a tracer provider and return the parallelizer tracer.

    The OpenTelemetry global can only be set once per process, so the first
    provider becomes the global one and later ones (after shutdown_tracing)
    hand out the tracer directly.

    Returns:
        Tracer: The tracer used for every parallelizer span.
    """
    global _provider, _tracer

    settings = get_settings()
    _provider = _build_provider(settings)
    if not isinstance(trace.get_tracer_provider(), TracerProvider):
        trace.set_tracer_provider(_provider)
    _tracer = _provider.get_tracer(settings.otel_service_name, __version__)
    return _tracer


def tracing_enabled() -> bool:
    """Whether spans are exported."""
    return get_settings().otel_exporter_otlp_endpoint is not None


def instrument_sqlalchemy(engine: Any) -> None:
    """
    Emit a span per statement of the SQL ledger.

    Args:
        engine: The sync engine behind an AsyncEngine.
    """
    get_tracer()
    SQLAlchemyInstrumentor().instrument(engine=engine, tracer_provider=_provider)


def get_tracer() -> Tracer:
    """The parallelizer tracer, installed on first use."""
    if _tracer is None:
        return setup_tracing()
    return _tracer


def shutdown_tracing() -> None:
    """Flush buffered spans and drop the tracer so the next command builds a fresh one."""
    global _provider, _tracer

    if _provider is not None:
        _provider.shutdown()
    _provider = None
    _tracer = None
