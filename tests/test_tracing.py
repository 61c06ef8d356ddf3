"""Tests for tracing.py — configure_tracing, traced_channel and service spans.

No OpenAI API key is needed.  OTel spans are collected with InMemorySpanExporter
so tests run fully offline.
"""
from __future__ import annotations

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from conftest import SAMPLE_MARKDOWN, HashingEmbeddingProvider, RecordingSynthesizer
from grounded_qa.pipeline import DocumentQAService
from grounded_qa.tracing import (
    ATTR_CHANNEL_NAME,
    ATTR_CHUNK_COUNT,
    ATTR_DOCUMENT_NAME,
    ATTR_GATE_PASSED,
    ATTR_GATE_REASON,
    ATTR_INPUT_VALUE,
    ATTR_RETRIEVAL_DOCUMENTS,
    configure_tracing,
    get_tracer,
    traced_channel,
)


# ---------------------------------------------------------------------------
# Shared in-memory exporter fixture
# ---------------------------------------------------------------------------


@pytest.fixture()
def mem_exporter() -> InMemorySpanExporter:
    """Fresh InMemorySpanExporter and a configured global TracerProvider."""
    exporter = InMemorySpanExporter()
    configure_tracing(exporter=exporter, service_name="test-service")
    return exporter


def _span(exporter: InMemorySpanExporter, name: str):
    return next(s for s in exporter.get_finished_spans() if s.name == name)


# ---------------------------------------------------------------------------
# configure_tracing
# ---------------------------------------------------------------------------


class TestConfigureTracing:
    def test_returns_tracer_provider(self):
        provider = configure_tracing(exporter=InMemorySpanExporter(), service_name="svc")
        assert isinstance(provider, TracerProvider)

    def test_service_name_on_resource(self):
        provider = configure_tracing(exporter=InMemorySpanExporter(), service_name="grounded-qa-test")
        assert provider.resource.attributes["service.name"] == "grounded-qa-test"

    def test_get_tracer_uses_configured_provider(self, mem_exporter):
        with get_tracer("test").start_as_current_span("probe"):
            pass
        assert [s.name for s in mem_exporter.get_finished_spans()] == ["probe"]


# ---------------------------------------------------------------------------
# traced_channel
# ---------------------------------------------------------------------------


class TestTracedChannel:
    def test_returns_channel_result(self, mem_exporter):
        wrapped = traced_channel("lexical", lambda: ["a", "b"], get_tracer("retrieval"))
        assert wrapped() == ["a", "b"]

    def test_span_named_after_channel(self, mem_exporter):
        traced_channel("semantic", lambda: [1, 2, 3], get_tracer("retrieval"))()
        span = _span(mem_exporter, "channel.semantic")
        assert span.attributes.get(ATTR_CHANNEL_NAME) == "semantic"
        assert span.attributes.get(ATTR_RETRIEVAL_DOCUMENTS) == 3
        assert span.status.status_code == StatusCode.OK

    def test_unsized_result_has_no_count(self, mem_exporter):
        traced_channel("exact", lambda: 42, get_tracer("retrieval"))()
        assert ATTR_RETRIEVAL_DOCUMENTS not in _span(mem_exporter, "channel.exact").attributes

    def test_span_status_error_on_exception(self, mem_exporter):
        def broken():
            raise RuntimeError("index unavailable")

        wrapped = traced_channel("lexical", broken, get_tracer("retrieval"))
        with pytest.raises(RuntimeError):
            wrapped()

        span = _span(mem_exporter, "channel.lexical")
        assert span.status.status_code == StatusCode.ERROR
        assert any(event.name == "exception" for event in span.events)


# ---------------------------------------------------------------------------
# DocumentQAService spans
# ---------------------------------------------------------------------------


class TestServiceSpans:
    @pytest.fixture()
    def service(self, mem_exporter, config):
        qa_service = DocumentQAService(
            provider=HashingEmbeddingProvider(),
            synthesizer=RecordingSynthesizer(),
            config=config,
            sleep=lambda _: None,
        )
        qa_service.ingest(SAMPLE_MARKDOWN, "policy.md")
        return qa_service

    def test_ingest_span(self, service, mem_exporter):
        span = _span(mem_exporter, "ingest")
        assert span.attributes.get(ATTR_DOCUMENT_NAME) == "policy.md"
        assert span.attributes.get(ATTR_CHUNK_COUNT) == len(service.workspace.current().chunks)

    def test_query_span_records_gate(self, service, mem_exporter):
        service.query("Does biometric login exist?")
        span = _span(mem_exporter, "query")
        assert span.attributes.get(ATTR_INPUT_VALUE) == "Does biometric login exist?"
        assert span.attributes.get(ATTR_GATE_PASSED) is False
        assert span.attributes.get(ATTR_GATE_REASON) == "missing_key_terms"

    def test_channel_spans_nest_under_retrieve(self, service, mem_exporter):
        service.query("How long do refunds take?")
        query_span = _span(mem_exporter, "query")
        retrieve_span = _span(mem_exporter, "retrieve")
        assert retrieve_span.parent.span_id == query_span.context.span_id

        channel_spans = [s for s in mem_exporter.get_finished_spans() if s.name.startswith("channel.")]
        assert sorted(s.name for s in channel_spans) == ["channel.exact", "channel.lexical", "channel.semantic"]
        for span in channel_spans:
            assert span.parent is not None
            assert span.parent.span_id == retrieve_span.context.span_id
            assert span.context.trace_id == query_span.context.trace_id
