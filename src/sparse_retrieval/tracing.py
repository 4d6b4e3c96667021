"""OpenTelemetry tracing helpers for the retrieval engine.

Two span kinds are emitted:
- ``retrieval``  : one `search_hits` call (query text, embedder, top_k, hit count)
- ``evaluation`` : one embedder pass over the labeled queries, with the
                   aggregated metrics attached once it finishes

Usage with an OTLP backend:

    from sparse_retrieval.tracing import configure_tracing, get_tracer, traced_search
    from sparse_retrieval.retrieval import search_hits

    configure_tracing(endpoint="http://localhost:6006/v1/traces")
    search = traced_search(search_hits, get_tracer("sparse-retrieval.search"))
    hits = search(embedder, "vpn policy", 5, corpus, index)

Without :func:`configure_tracing`, tracers come from the global no-op provider
and spans are discarded.
"""
from __future__ import annotations

from typing import Callable

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor, SpanExporter

from .schema import EvaluationRun, SearchHit

ATTR_INPUT_VALUE = "input.value"
ATTR_EMBEDDER_NAME = "embedding.model_name"
ATTR_TOP_K = "retrieval.top_k"
ATTR_RETRIEVAL_DOCUMENTS = "retrieval.documents"
ATTR_RECALL = "evaluation.recall"
ATTR_MRR = "evaluation.mrr"
ATTR_NDCG = "evaluation.ndcg"
ATTR_LATENCY_MS = "evaluation.avg_latency_ms"
ATTR_INDEX_SIZE = "evaluation.index_size"

_provider: TracerProvider | None = None


def configure_tracing(
    endpoint: str | None = None,
    service_name: str = "sparse-retrieval",
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """Create and register a TracerProvider.

    Args:
        endpoint: OTLP HTTP endpoint. When *None* and no *exporter* is given,
            spans are printed to stdout.
        service_name: Service label shown by the observability backend.
        exporter: Pre-built exporter (e.g. ``InMemorySpanExporter`` in tests);
            takes precedence over *endpoint*.

    Returns:
        The configured provider, also used by :func:`get_tracer`.
    """
    global _provider

    provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: service_name}))

    if exporter is not None:
        chosen_exporter: SpanExporter = exporter
    elif endpoint is not None:
        try:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
                OTLPSpanExporter,
            )
        except ImportError as exc:
            raise ImportError(
                "opentelemetry-exporter-otlp-proto-http is required to export "
                "traces to an OTLP endpoint.  Install the `otlp` extra."
            ) from exc
        chosen_exporter = OTLPSpanExporter(endpoint=endpoint)
    else:
        chosen_exporter = ConsoleSpanExporter()

    # Synchronous export keeps spans visible immediately after each command.
    provider.add_span_processor(SimpleSpanProcessor(chosen_exporter))
    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def get_tracer(name: str) -> trace.Tracer:
    """Return a tracer from the configured provider, or the global no-op one."""
    if _provider is not None:
        return _provider.get_tracer(name)
    return trace.get_tracer(name)


def traced_search(
    search_fn: Callable[..., list[SearchHit]],
    tracer: trace.Tracer,
) -> Callable[..., list[SearchHit]]:
    """Wrap a `search_hits`-shaped callable so every call records a ``retrieval`` span.

    The span carries the query text, embedder name, ``top_k`` and hit count,
    with status ERROR (and the recorded exception) when the search raises.
    """

    def _wrapped(embedder, query: str, top_k: int, *args, **kwargs) -> list[SearchHit]:
        with tracer.start_as_current_span("retrieval") as span:
            span.set_attribute(ATTR_INPUT_VALUE, query)
            span.set_attribute(ATTR_EMBEDDER_NAME, embedder.name())
            span.set_attribute(ATTR_TOP_K, top_k)
            try:
                hits = search_fn(embedder, query, top_k, *args, **kwargs)
                span.set_attribute(ATTR_RETRIEVAL_DOCUMENTS, len(hits))
                span.set_status(trace.StatusCode.OK)
                return hits
            except Exception as exc:
                span.set_status(trace.StatusCode.ERROR, str(exc))
                span.record_exception(exc)
                raise

    return _wrapped


def traced_evaluation(
    evaluate_fn: Callable[..., EvaluationRun],
    tracer: trace.Tracer,
) -> Callable[..., EvaluationRun]:
    """Wrap an `evaluate_embedder`-shaped callable in an ``evaluation`` span.

    Aggregated metrics are attached to the span once the pass completes.
    """

    def _wrapped(embedder, *args, **kwargs) -> EvaluationRun:
        with tracer.start_as_current_span("evaluation") as span:
            span.set_attribute(ATTR_EMBEDDER_NAME, embedder.name())
            try:
                run = evaluate_fn(embedder, *args, **kwargs)
            except Exception as exc:
                span.set_status(trace.StatusCode.ERROR, str(exc))
                span.record_exception(exc)
                raise
            metrics = run.metrics
            span.set_attribute(ATTR_RECALL, metrics.recall)
            span.set_attribute(ATTR_MRR, metrics.mrr)
            span.set_attribute(ATTR_NDCG, metrics.ndcg)
            span.set_attribute(ATTR_LATENCY_MS, metrics.avg_latency_ms)
            span.set_attribute(ATTR_INDEX_SIZE, metrics.index_size)
            span.set_status(trace.StatusCode.OK)
            return run

    return _wrapped
