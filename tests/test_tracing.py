"""Tests for tracing.py — configure_tracing, get_tracer, traced_search, traced_evaluation.

OTel spans are collected with InMemorySpanExporter so tests run fully offline.
"""
from __future__ import annotations

from pathlib import Path

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from sparse_retrieval import tracing
from sparse_retrieval.embeddings import TfEmbedder
from sparse_retrieval.evaluation import evaluate_embedder
from sparse_retrieval.retrieval import search_hits
from sparse_retrieval.tracing import (
    ATTR_EMBEDDER_NAME,
    ATTR_INDEX_SIZE,
    ATTR_INPUT_VALUE,
    ATTR_RECALL,
    ATTR_RETRIEVAL_DOCUMENTS,
    ATTR_TOP_K,
    configure_tracing,
    get_tracer,
    traced_evaluation,
    traced_search,
)

from conftest import make_hit


# ---------------------------------------------------------------------------
# Shared in-memory exporter fixture
# ---------------------------------------------------------------------------


@pytest.fixture()
def mem_exporter() -> InMemorySpanExporter:
    """Fresh InMemorySpanExporter and a configured TracerProvider."""
    exporter = InMemorySpanExporter()
    configure_tracing(exporter=exporter, service_name="test-service")
    return exporter


def _span(exporter: InMemorySpanExporter, name: str):
    return next(span for span in exporter.get_finished_spans() if span.name == name)


# ---------------------------------------------------------------------------
# configure_tracing / get_tracer
# ---------------------------------------------------------------------------


class TestConfigureTracing:
    def test_module_opens_with_docstring(self):
        source = Path(tracing.__file__).read_text(encoding="utf-8")
        assert source.startswith('"""OpenTelemetry tracing helpers')

    def test_returns_provider_with_service_name(self):
        provider = configure_tracing(exporter=InMemorySpanExporter(), service_name="svc-test")
        assert provider.resource.attributes["service.name"] == "svc-test"

    def test_missing_otlp_package_raises_import_error(self, monkeypatch):
        """When the otlp exporter package is absent, a helpful ImportError is raised."""
        import builtins
        real_import = builtins.__import__

        def mock_import(name, *args, **kwargs):
            if "otlp" in name:
                raise ImportError("mocked missing package")
            return real_import(name, *args, **kwargs)

        monkeypatch.setattr(builtins, "__import__", mock_import)
        with pytest.raises(ImportError, match="opentelemetry-exporter-otlp"):
            configure_tracing(endpoint="http://localhost:6006/v1/traces")


class TestGetTracer:
    def test_returns_tracer(self, mem_exporter):
        tracer = get_tracer("test.component")
        assert hasattr(tracer, "start_as_current_span")

    def test_spans_reach_configured_exporter(self, mem_exporter):
        with get_tracer("test.component").start_as_current_span("manual"):
            pass
        assert [span.name for span in mem_exporter.get_finished_spans()] == ["manual"]


# ---------------------------------------------------------------------------
# traced_search
# ---------------------------------------------------------------------------


class TestTracedSearch:
    def test_returns_same_hits(self, mem_exporter, sample_corpus):
        state, index = sample_corpus
        wrapped = traced_search(search_hits, get_tracer("retrieval"))
        hits = wrapped(TfEmbedder(), "work remotely", 3, state, index)
        assert [hit.chunk.id for hit in hits] == [hit.chunk.id for hit in search_hits(TfEmbedder(), "work remotely", 3, state, index)]

    def test_span_attributes(self, mem_exporter, sample_corpus):
        state, index = sample_corpus
        wrapped = traced_search(search_hits, get_tracer("retrieval"))
        hits = wrapped(TfEmbedder(), "vpn policy", 2, state, index)

        span = _span(mem_exporter, "retrieval")
        assert span.attributes.get(ATTR_INPUT_VALUE) == "vpn policy"
        assert span.attributes.get(ATTR_EMBEDDER_NAME) == "tf"
        assert span.attributes.get(ATTR_TOP_K) == 2
        assert span.attributes.get(ATTR_RETRIEVAL_DOCUMENTS) == len(hits)
        assert span.status.status_code == StatusCode.OK

    def test_span_status_error_on_exception(self, mem_exporter):
        def broken_search(embedder, query, top_k, *args, **kwargs):
            raise RuntimeError("index corrupted")

        wrapped = traced_search(broken_search, get_tracer("retrieval"))
        with pytest.raises(RuntimeError):
            wrapped(TfEmbedder(), "query", 3)

        span = _span(mem_exporter, "retrieval")
        assert span.status.status_code == StatusCode.ERROR
        assert span.events[0].name == "exception"

    def test_fake_search_passthrough(self, mem_exporter):
        def fake_search(embedder, query, top_k, *args, **kwargs):
            return [make_hit(f"C-{i}", f"chunk {i}") for i in range(top_k)]

        wrapped = traced_search(fake_search, get_tracer("retrieval"))
        assert len(wrapped(TfEmbedder(), "q", 4)) == 4
        assert _span(mem_exporter, "retrieval").attributes.get(ATTR_RETRIEVAL_DOCUMENTS) == 4


# ---------------------------------------------------------------------------
# traced_evaluation
# ---------------------------------------------------------------------------


class TestTracedEvaluation:
    def test_metrics_recorded_on_span(self, mem_exporter, sample_corpus, sample_query):
        state, index = sample_corpus
        wrapped = traced_evaluation(evaluate_embedder, get_tracer("evaluation"))
        run = wrapped(TfEmbedder(), [sample_query], state, index)

        span = _span(mem_exporter, "evaluation")
        assert span.attributes.get(ATTR_EMBEDDER_NAME) == "tf"
        assert span.attributes.get(ATTR_RECALL) == run.metrics.recall
        assert span.attributes.get(ATTR_INDEX_SIZE) == 3

    def test_search_spans_nest_under_evaluation(self, mem_exporter, sample_corpus, sample_query):
        state, index = sample_corpus
        wrapped = traced_evaluation(evaluate_embedder, get_tracer("evaluation"))
        wrapped(TfEmbedder(), [sample_query], state, index)

        evaluation = _span(mem_exporter, "evaluation")
        retrieval = _span(mem_exporter, "retrieval")
        assert retrieval.parent is not None
        assert retrieval.parent.span_id == evaluation.context.span_id

    def test_error_status_on_exception(self, mem_exporter):
        def broken_evaluate(embedder, *args, **kwargs):
            raise ValueError("bad queries")

        wrapped = traced_evaluation(broken_evaluate, get_tracer("evaluation"))
        with pytest.raises(ValueError):
            wrapped(TfEmbedder())
        assert _span(mem_exporter, "evaluation").status.status_code == StatusCode.ERROR
