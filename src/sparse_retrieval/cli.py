from __future__ import annotations

import argparse
import logging
import sys

from . import pipeline
from .errors import RetrievalEngineError
from .io_utils import load_queries
from .models import train_model
from .schema import ChunkStrategy
from .settings import Settings, load_settings, parse_strategies
from .tracing import configure_tracing


def cmd_ingest(args: argparse.Namespace, settings: Settings) -> None:
    state, index = pipeline.open_corpus(settings)
    embedder = pipeline.default_embedder(settings)
    report = pipeline.ingest(
        args.path,
        settings,
        state,
        index,
        embedder,
        strategy=ChunkStrategy(args.strategy),
        emit_normalized=args.emit_normalized,
        emit_word_tally=args.emit_word_tally,
    )
    for skipped in report.skipped:
        print(f"Skipping already ingested {skipped}")
    for empty in report.empty:
        print(f"No chunks produced for {empty}")
    pipeline.persist(state, settings)
    print(f"Ingested {len(state.documents)} documents ({len(state.chunks)} chunks total).")


def cmd_search(args: argparse.Namespace, settings: Settings) -> None:
    state, index = pipeline.open_corpus(settings)
    if not len(index):
        print("No indexed chunks yet. Run `sparse-retrieval ingest` first.")
        return
    hits = pipeline.search(args.query, settings, state, index, pipeline.default_embedder(settings), top_k=args.top_k)
    if not hits:
        print("No matching chunks found for query.")
        return
    for rank, hit in enumerate(hits, start=1):
        print(f"Result {rank} (score: {hit.score:.3f})")
        print(f" -> Document: {hit.document.path}")
        print(f" -> Chunk: {hit.chunk.text.strip()}")
        print("-" * 10)


def cmd_status(args: argparse.Namespace, settings: Settings) -> None:
    state, _ = pipeline.open_corpus(settings)
    summary = pipeline.status(state)
    print(f"Documents: {summary['documents']}")
    print(f"Chunks: {summary['chunks']}")
    if summary["latest_document"]:
        print(f"Latest document: {summary['latest_document']}")


def cmd_evaluate(args: argparse.Namespace, settings: Settings) -> None:
    state, index = pipeline.open_corpus(settings)
    if not len(index):
        print("No indexed chunks yet. Run `sparse-retrieval ingest` before evaluating.")
        return
    queries = load_queries(args.queries) if args.queries else None
    runs = pipeline.evaluate(settings, state, index, queries=queries)
    if not runs:
        print("No evaluation queries configured.")
    for run in runs:
        metrics = run.metrics
        print(
            f"Evaluation {run.embedder} -> recall={metrics.recall:.3f}, mrr={metrics.mrr:.3f}, "
            f"nDCG={metrics.ndcg:.3f}, latency={metrics.avg_latency_ms:.1f}ms, "
            f"index={metrics.index_size} entries"
        )


def cmd_train(args: argparse.Namespace, settings: Settings) -> None:
    result = train_model(
        args.chunks or settings.paths.chunks_file,
        settings.paths.models_dir,
        args.model,
        version=args.version,
        sample_limit=settings.training.sample_limit,
    )
    print(
        f"Trained {result.manifest.name}@{result.manifest.version} from "
        f"{result.manifest.example_count} examples -> {result.manifest_path}"
    )


def cmd_rag(args: argparse.Namespace, settings: Settings) -> None:
    if args.strategy:
        settings.rag.strategies = parse_strategies(args.strategy, args.boost)
    elif args.boost:
        for strategy in settings.rag.strategies:
            strategy.boost_terms = list(args.boost)
    state, index = pipeline.open_corpus(settings)
    outcomes = pipeline.rag(args.query, settings, state, index, pipeline.default_embedder(settings), top_k=args.top_k)
    if not outcomes:
        print("No hits found for query.")
        return
    for outcome in outcomes:
        ranked = outcome.ranked_hits()
        if not ranked:
            print(f"Strategy {outcome.strategy.name} produced no reranked hits.")
            continue
        print(f"=== Strategy: {outcome.strategy.name} ===")
        for rank, (hit, score) in enumerate(ranked, start=1):
            first_line = hit.chunk.text.splitlines()[0].strip() if hit.chunk.text else ""
            print(f"Result {rank} [score: {score:.3f}] -> {first_line}")
            print(f"  Document: {hit.document.path} [{hit.chunk.start}-{hit.chunk.end}/{hit.chunk.strategy}]")
        print(f"Prompt:\n{outcome.prompt}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sparse-retrieval", description="Local sparse-vector document retrieval")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--env-file", default=None, help="Optional .env file with RETRIEVAL_* settings")
    parser.add_argument("--trace", action="store_true", help="Print OpenTelemetry spans to stdout")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_ingest = sub.add_parser("ingest", help="Ingest text/Markdown files into the corpus and index")
    p_ingest.add_argument("path", help="File or directory to ingest")
    p_ingest.add_argument(
        "--strategy",
        choices=[strategy.value for strategy in ChunkStrategy],
        default=ChunkStrategy.STRUCTURED.value,
    )
    p_ingest.add_argument("--emit-normalized", action="store_true", help="Write normalized text to artifacts")
    p_ingest.add_argument("--emit-word-tally", action="store_true", help="Write a word-count CSV to artifacts")
    p_ingest.set_defaults(func=cmd_ingest)

    p_search = sub.add_parser("search", help="Search the corpus")
    p_search.add_argument("query")
    p_search.add_argument("--top-k", type=int, default=None)
    p_search.set_defaults(func=cmd_search)

    p_status = sub.add_parser("status", help="Show corpus status")
    p_status.set_defaults(func=cmd_status)

    p_eval = sub.add_parser("evaluate", help="Run the evaluation harness")
    p_eval.add_argument("--queries", default=None, help="Evaluation queries JSONL (default: <data>/queries.jsonl)")
    p_eval.set_defaults(func=cmd_evaluate)

    p_train = sub.add_parser("train", help="Train a custom embedder from exported chunks")
    p_train.add_argument("model")
    p_train.add_argument("--version", default=None)
    p_train.add_argument("--chunks", default=None, help="Chunk JSONL override")
    p_train.set_defaults(func=cmd_train)

    p_rag = sub.add_parser("rag", help="Search, rerank and assemble a prompt")
    p_rag.add_argument("query")
    p_rag.add_argument("--top-k", type=int, default=None)
    p_rag.add_argument("--strategy", action="append", default=None, help="name=mode (none, term_overlap, hybrid)")
    p_rag.add_argument("--boost", action="append", default=None, help="Boost term (repeatable)")
    p_rag.set_defaults(func=cmd_rag)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.trace:
        configure_tracing(service_name="sparse-retrieval")
    try:
        settings = load_settings(args.env_file)
        args.func(args, settings)
    except RetrievalEngineError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
