from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
import logging
from pathlib import Path
import time

import numpy as np

from .corpus import CorpusState
from .embeddings import Embedder, EmbedderKind, build_embedder
from .io_utils import write_run
from .retrieval import search_hits
from .schema import AggregatedMetrics, EvaluationQuery, EvaluationRun, QueryReport, SearchHit
from .tracing import get_tracer, traced_evaluation, traced_search
from .vector_store import VectorIndex

logger = logging.getLogger(__name__)


def _discounts(count: int) -> np.ndarray:
    """Gain `1 / log2(rank + 1)` for ranks 1..count."""
    return 1.0 / np.log2(np.arange(2, count + 2, dtype=np.float64))


def compute_ndcg(relevance_flags: Sequence[bool], satisfied: int) -> float:
    """Normalized DCG of binary relevance flags in rank order.

    The ideal ranking places `satisfied` relevant hits at ranks 1..satisfied.
    Returns 0.0 when nothing was satisfied.
    """
    if satisfied == 0:
        return 0.0
    flags = np.asarray(relevance_flags, dtype=bool)
    actual = float(_discounts(len(flags))[flags].sum())
    ideal = float(_discounts(satisfied).sum())
    return actual / ideal if ideal else 0.0


def evaluate_query(query: EvaluationQuery, hits: Sequence[SearchHit], top_k: int) -> QueryReport:
    """Score ranked hits against the query's expected terms.

    A hit is relevant when it contains (case-insensitive substring) at least one
    expected term not already satisfied by a higher-ranked hit.
    """
    terms = [term.lower() for term in query.expected_terms]
    satisfied = [False] * len(terms)
    relevance_flags: list[bool] = []
    first_relevant_rank: int | None = None

    for rank, hit in enumerate(hits, start=1):
        text = hit.chunk.text.lower()
        relevant = False
        for idx, term in enumerate(terms):
            if not satisfied[idx] and term in text:
                satisfied[idx] = True
                relevant = True
        if relevant and first_relevant_rank is None:
            first_relevant_rank = rank
        relevance_flags.append(relevant)

    matched = sum(satisfied)
    return QueryReport(
        name=query.name,
        top_k=top_k,
        recall=matched / len(terms) if terms else 0.0,
        mrr=1.0 / first_relevant_rank if first_relevant_rank else 0.0,
        ndcg=compute_ndcg(relevance_flags, matched),
        hits=len(hits),
        expected=len(terms),
    )


def aggregate_metrics(reports: Sequence[QueryReport], index_size: int) -> AggregatedMetrics:
    """Average per-query metrics; an empty report list yields zeros."""
    if not reports:
        return AggregatedMetrics(recall=0.0, mrr=0.0, ndcg=0.0, avg_latency_ms=0.0, index_size=index_size)
    table = np.array([[r.recall, r.mrr, r.ndcg, r.latency_ms] for r in reports], dtype=np.float64)
    recall, mrr, ndcg, latency = table.mean(axis=0)
    return AggregatedMetrics(
        recall=float(recall),
        mrr=float(mrr),
        ndcg=float(ndcg),
        avg_latency_ms=float(latency),
        index_size=index_size,
    )


def evaluate_embedder(
    embedder: Embedder,
    queries: Sequence[EvaluationQuery],
    corpus: CorpusState,
    index: VectorIndex,
    default_top_k: int = 5,
    score_threshold: float = 0.0,
    normalize_query: bool = True,
) -> EvaluationRun:
    """Run every evaluation query through `search_hits` for one embedder.

    Args:
        embedder: Embedder under test.
        queries: Labeled queries; a query's own `top_k` overrides the default.
        corpus: Corpus the index was built from.
        index: Vector index to search.
        default_top_k: Hit limit for queries without an override.
        score_threshold: Minimum similarity kept by the ranker.
        normalize_query: Normalize query text before embedding.

    Returns:
        `EvaluationRun` with per-query reports and aggregated metrics.
    """
    search = traced_search(search_hits, get_tracer("sparse_retrieval.evaluation"))
    reports: list[QueryReport] = []
    for query in queries:
        top_k = query.top_k if query.top_k is not None else default_top_k
        started = time.perf_counter()
        hits = search(
            embedder,
            query.query,
            top_k,
            corpus,
            index,
            score_threshold=score_threshold,
            normalize_query=normalize_query,
        )
        elapsed_ms = (time.perf_counter() - started) * 1000
        report = evaluate_query(query, hits, top_k)
        report.latency_ms = elapsed_ms
        reports.append(report)

    return EvaluationRun(
        timestamp=datetime.now(timezone.utc).isoformat(),
        embedder=embedder.name(),
        metrics=aggregate_metrics(reports, len(index)),
        queries=reports,
    )


def run_evaluation(
    kinds: Sequence[EmbedderKind],
    queries: Sequence[EvaluationQuery],
    corpus: CorpusState,
    index: VectorIndex,
    default_top_k: int = 5,
    score_threshold: float = 0.0,
    normalize_query: bool = True,
    min_freq: int = 1,
    models_dir: str | Path = "models",
    runs_dir: str | Path | None = None,
) -> list[EvaluationRun]:
    """Evaluate each embedder kind and optionally log one run record per kind.

    The index is searched with each embedder in turn, so it should have been
    built with vectors that embedder can be compared against.

    Returns:
        One `EvaluationRun` per embedder kind, in input order.
    """
    evaluate = traced_evaluation(evaluate_embedder, get_tracer("sparse_retrieval.evaluation"))
    runs: list[EvaluationRun] = []
    for kind in kinds:
        embedder = build_embedder(kind, min_freq=min_freq, models_dir=models_dir)
        run = evaluate(
            embedder,
            queries,
            corpus,
            index,
            default_top_k=default_top_k,
            score_threshold=score_threshold,
            normalize_query=normalize_query,
        )
        metrics = run.metrics
        logger.info(
            "Evaluation %s: recall=%.3f mrr=%.3f ndcg=%.3f latency=%.1fms index=%d",
            run.embedder,
            metrics.recall,
            metrics.mrr,
            metrics.ndcg,
            metrics.avg_latency_ms,
            metrics.index_size,
        )
        if runs_dir is not None:
            write_run(run, runs_dir)
        runs.append(run)
    return runs
