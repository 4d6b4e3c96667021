from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
import csv
import hashlib
import logging
from pathlib import Path
import re
import uuid

from .chunking import Chunker
from .corpus import CorpusState
from .embeddings import Embedder, build_embedder
from .errors import ResourceError
from .evaluation import run_evaluation
from .io_utils import load_queries, load_state, save_chunks, save_state
from .normalization import normalize
from .reranking import RagOutcome, run_rag
from .retrieval import search_hits
from .schema import ChunkStrategy, Document, EvaluationQuery, EvaluationRun, SearchHit
from .settings import Settings
from .tracing import get_tracer, traced_search
from .vector_store import VectorIndex

logger = logging.getLogger(__name__)

_TALLY_SPLIT = re.compile(r"[^\w]+|_+")


@dataclass(slots=True)
class IngestReport:
    """Outcome of one ingest command."""

    ingested: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    empty: list[str] = field(default_factory=list)
    chunk_count: int = 0
    artifacts: list[Path] = field(default_factory=list)


def hash_text(text: str) -> str:
    """SHA-256 hex digest of normalized document text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def collect_sources(path: str | Path, extensions: list[str]) -> list[Path]:
    """Return `path` itself when it is a file, else matching files beneath it.

    Extension matching is case-insensitive and results are sorted.
    """
    path = Path(path)
    if path.is_file():
        return [path]
    allowed = {ext.lower().lstrip(".") for ext in extensions}
    return sorted(
        candidate
        for candidate in path.rglob("*")
        if candidate.is_file() and candidate.suffix.lower().lstrip(".") in allowed
    )


def open_corpus(settings: Settings) -> tuple[CorpusState, VectorIndex]:
    """Load the corpus snapshot and build its vector index."""
    state = load_state(settings.paths.state_file)
    return state, VectorIndex(state.index_entries)


def default_embedder(settings: Settings) -> Embedder:
    return build_embedder(
        settings.embedder.kind,
        min_freq=settings.embedder.tf_min_freq,
        models_dir=settings.paths.models_dir,
    )


def _tally_words(counts: Counter[str], text: str) -> None:
    counts.update(word.lower() for word in _TALLY_SPLIT.split(text) if word)


def _write_word_tally(path: Path, counts: Counter[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    rows = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    with path.open("w", encoding="utf-8", newline="") as file_handle:
        writer = csv.writer(file_handle)
        writer.writerow(["word", "count"])
        writer.writerows(rows)


def ingest(
    path: str | Path,
    settings: Settings,
    state: CorpusState,
    index: VectorIndex,
    embedder: Embedder,
    strategy: ChunkStrategy = ChunkStrategy.STRUCTURED,
    emit_normalized: bool = False,
    emit_word_tally: bool = False,
) -> IngestReport:
    """Normalize, chunk and embed source files into the corpus and index.

    Args:
        path: File or directory to ingest.
        settings: Runtime configuration.
        state: Corpus receiving documents and chunks.
        index: Vector index receiving one entry per chunk.
        embedder: Embedder for chunk vectors and token counts.
        strategy: Chunking strategy.
        emit_normalized: Write all normalized text to the artifacts directory.
        emit_word_tally: Write a CSV of word counts to the artifacts directory.

    Returns:
        `IngestReport` listing ingested, skipped and empty files.
    """
    report = IngestReport()
    sources = collect_sources(path, settings.ingest.extensions)
    if not sources:
        logger.warning("No source files found at %s", path)
        return report

    chunker = Chunker.from_settings(strategy, settings.chunk)
    normalized_parts: list[str] = []
    word_counts: Counter[str] = Counter()

    for source in sources:
        try:
            raw = source.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ResourceError(f"cannot read source {source}: {exc}") from exc
        normalized = normalize(raw)
        if emit_normalized:
            normalized_parts.append(f"### {source}\n\n{normalized}\n\n")
        if emit_word_tally:
            _tally_words(word_counts, normalized)

        content_hash = hash_text(normalized)
        if state.has_document(content_hash):
            logger.info("Already ingested %s", source)
            if settings.ingest.skip_duplicates:
                report.skipped.append(str(source))
                continue

        doc_id = str(uuid.uuid4())
        chunks = chunker.chunk(doc_id, normalized)
        if not chunks:
            logger.warning("No chunks produced for %s", source)
            report.empty.append(str(source))
            continue

        entries = [index.add_chunk(chunk.id, doc_id, embedder.embed(chunk.text)) for chunk in chunks]
        token_count = embedder.token_count(normalized)
        document = Document(id=doc_id, path=str(source.resolve()), hash=content_hash, token_count=token_count)
        state.add_document(document, chunks, entries)
        report.ingested.append(str(source))
        report.chunk_count += len(chunks)
        if settings.ingest.verbose_documents:
            logger.info("Document %s -> %d tokens, %d chunks", source, token_count, len(chunks))

    artifacts_dir = settings.paths.artifacts_dir
    if emit_normalized:
        normalized_path = artifacts_dir / "normalized.txt"
        normalized_path.parent.mkdir(parents=True, exist_ok=True)
        normalized_path.write_text("".join(normalized_parts), encoding="utf-8")
        report.artifacts.append(normalized_path)
    if emit_word_tally:
        tally_path = artifacts_dir / "word_tally.csv"
        _write_word_tally(tally_path, word_counts)
        report.artifacts.append(tally_path)
    return report


def persist(state: CorpusState, settings: Settings) -> None:
    """Write the chunk export and the corpus snapshot."""
    save_chunks(state.chunks, settings.paths.chunks_file)
    save_state(state, settings.paths.state_file)


def search(
    query: str,
    settings: Settings,
    state: CorpusState,
    index: VectorIndex,
    embedder: Embedder,
    top_k: int | None = None,
) -> list[SearchHit]:
    traced = traced_search(search_hits, get_tracer("sparse_retrieval.search"))
    return traced(
        embedder,
        query,
        top_k if top_k is not None else settings.search.top_k,
        state,
        index,
        score_threshold=settings.search.score_threshold,
        normalize_query=settings.embedder.normalize_query,
    )


def rag(
    query: str,
    settings: Settings,
    state: CorpusState,
    index: VectorIndex,
    embedder: Embedder,
    top_k: int | None = None,
) -> list[RagOutcome]:
    """Search, then rerank and assemble one prompt per configured strategy."""
    hits = search(query, settings, state, index, embedder, top_k=top_k)
    if not hits:
        return []
    return run_rag(
        query,
        hits,
        settings.rag.strategies,
        settings.rag.context_budget,
        settings.rag.prompt_template,
    )


def evaluate(
    settings: Settings,
    state: CorpusState,
    index: VectorIndex,
    queries: list[EvaluationQuery] | None = None,
) -> list[EvaluationRun]:
    """Evaluate every configured embedder kind against the labeled queries."""
    if queries is None:
        queries_file = settings.paths.queries_file
        queries = load_queries(queries_file) if queries_file.exists() else []
    if not queries or not len(index):
        logger.warning("Nothing to evaluate: %d queries, %d index entries", len(queries), len(index))
        return []
    return run_evaluation(
        settings.evaluation.embedder_kinds,
        queries,
        state,
        index,
        default_top_k=settings.search.top_k,
        score_threshold=settings.search.score_threshold,
        normalize_query=settings.embedder.normalize_query,
        min_freq=settings.embedder.tf_min_freq,
        models_dir=settings.paths.models_dir,
        runs_dir=settings.paths.runs_dir if settings.evaluation.log_runs else None,
    )


def status(state: CorpusState) -> dict[str, object]:
    return {
        "documents": len(state.documents),
        "chunks": len(state.chunks),
        "index_entries": len(state.index_entries),
        "latest_document": state.documents[-1].path if state.documents else None,
    }
