"""OpenTelemetry tracing helpers for ingest and query.

Every query produces a ``query`` span with one child span per retrieval
channel (``channel.lexical``, ``channel.semantic``, ``channel.exact``); every
upload produces an ``ingest`` span. Until :func:`configure_tracing` is
called the global no-op provider discards spans, so tracing costs nothing in
tests or scripts that do not opt in.

Usage with an OTLP backend such as Arize Phoenix:

    from grounded_qa.tracing import configure_tracing

    configure_tracing(endpoint="http://localhost:6006/v1/traces", service_name="grounded-qa")

Usage in development:

    configure_tracing()   # ConsoleSpanExporter
"""
from __future__ import annotations

from typing import Callable, TypeVar

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)

T = TypeVar("T")

# OpenInference-style attribute names plus a few pipeline-specific ones.
ATTR_INPUT_VALUE = "input.value"
ATTR_OUTPUT_VALUE = "output.value"
ATTR_RETRIEVAL_DOCUMENTS = "retrieval.documents"
ATTR_CHANNEL_NAME = "retrieval.channel"
ATTR_CHANNEL_DEGRADED = "retrieval.channel.degraded"
ATTR_POOL_SIZE = "retrieval.pool_size"
ATTR_GATE_PASSED = "evidence.passed"
ATTR_GATE_REASON = "evidence.reason"
ATTR_DOCUMENT_NAME = "document.filename"
ATTR_CHUNK_COUNT = "document.chunk_count"

_provider: TracerProvider | None = None


def configure_tracing(
    endpoint: str | None = None,
    service_name: str = "grounded-qa",
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """Create and register a global TracerProvider.

    Args:
        endpoint: OTLP HTTP endpoint URL. Ignored when ``exporter`` is given.
            With neither, spans are printed via ``ConsoleSpanExporter``.
        service_name: Service label shown by the observability backend.
        exporter: A ready-made exporter, e.g. ``InMemorySpanExporter`` in tests.

    Returns:
        The configured provider, also installed as the global one.
    """
    global _provider

    resource = Resource(attributes={SERVICE_NAME: service_name})
    provider = TracerProvider(resource=resource)

    if exporter is not None:
        chosen_exporter: SpanExporter = exporter
    elif endpoint is not None:
        try:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
                OTLPSpanExporter,
            )
        except ImportError as exc:  # pragma: no cover
            raise ImportError(
                "opentelemetry-exporter-otlp-proto-http is required to export "
                "traces to an OTLP endpoint. Install the 'otlp' extra."
            ) from exc
        chosen_exporter = OTLPSpanExporter(endpoint=endpoint)
    else:
        chosen_exporter = ConsoleSpanExporter()

    provider.add_span_processor(SimpleSpanProcessor(chosen_exporter))
    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def get_tracer(name: str) -> trace.Tracer:
    """Return a tracer from the configured provider, or the global no-op one."""
    if _provider is not None:
        return _provider.get_tracer(name)
    return trace.get_tracer(name)


def traced_channel(name: str, channel: Callable[[], T], tracer: trace.Tracer) -> Callable[[], T]:
    """Wrap a zero-argument retrieval channel so each run is one span.

    The span records the channel name, the number of results when the result
    is sized, and ERROR status plus the exception when the channel raises.
    The exception is re-raised; degrading is the orchestrator's decision.
    """

    def _wrapped() -> T:
        with tracer.start_as_current_span(f"channel.{name}") as span:
            span.set_attribute(ATTR_CHANNEL_NAME, name)
            try:
                result = channel()
            except Exception as exc:
                span.set_status(trace.StatusCode.ERROR, str(exc))
                span.record_exception(exc)
                raise
            try:
                span.set_attribute(ATTR_RETRIEVAL_DOCUMENTS, len(result))  # type: ignore[arg-type]
            except TypeError:
                pass
            span.set_status(trace.StatusCode.OK)
            return result

    return _wrapped
