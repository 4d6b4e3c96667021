from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .chunking import DEFAULT_SEPARATORS
from .embeddings import EmbedderKind
from .errors import ConfigurationError
from .reranking import RerankMode, RerankStrategy

DEFAULT_PROMPT_TEMPLATE = (
    "Answer the question using only the context below. "
    "If the answer is not present, say you do not have enough context.\n\n"
    "Question: {query}\n\n"
    "Context:\n{context}\n"
)


def _default_strategies() -> list[RerankStrategy]:
    return [
        RerankStrategy(name="baseline", mode=RerankMode.NONE),
        RerankStrategy(name="term-overlap", mode=RerankMode.TERM_OVERLAP),
        RerankStrategy(name="hybrid", mode=RerankMode.HYBRID),
    ]


@dataclass(slots=True)
class ChunkSettings:
    """Chunker knobs shared by both strategies."""

    max_tokens: int = 200
    overlap: int = 32
    split_on_separators: bool = True
    dedupe_segments: bool = True
    separators: list[str] = field(default_factory=lambda: list(DEFAULT_SEPARATORS))


@dataclass(slots=True)
class EmbedderSettings:
    kind: EmbedderKind = field(default_factory=lambda: EmbedderKind("tf"))
    tf_min_freq: int = 1
    normalize_query: bool = True


@dataclass(slots=True)
class SearchSettings:
    top_k: int = 5
    score_threshold: float = 0.0


@dataclass(slots=True)
class IngestSettings:
    extensions: list[str] = field(default_factory=lambda: ["txt", "md"])
    skip_duplicates: bool = True
    verbose_documents: bool = True


@dataclass(slots=True)
class EvaluationSettings:
    embedder_kinds: list[EmbedderKind] = field(
        default_factory=lambda: [EmbedderKind("tf"), EmbedderKind("bow")]
    )
    log_runs: bool = True


@dataclass(slots=True)
class RagSettings:
    context_budget: int = 1024
    prompt_template: str = DEFAULT_PROMPT_TEMPLATE
    strategies: list[RerankStrategy] = field(default_factory=_default_strategies)


@dataclass(slots=True)
class TrainingSettings:
    sample_limit: int = 1000


@dataclass(slots=True)
class Paths:
    """On-disk layout, rooted at one explicit data directory."""

    data_dir: str = "data"

    @property
    def state_file(self) -> Path:
        return Path(self.data_dir) / "state.json"

    @property
    def chunks_file(self) -> Path:
        return Path(self.data_dir) / "chunks.jsonl"

    @property
    def queries_file(self) -> Path:
        return Path(self.data_dir) / "queries.jsonl"

    @property
    def artifacts_dir(self) -> Path:
        return Path(self.data_dir) / "artifacts"

    @property
    def runs_dir(self) -> Path:
        return Path(self.data_dir) / "runs"

    @property
    def models_dir(self) -> Path:
        return Path(self.data_dir) / "models"


@dataclass(slots=True)
class Settings:
    """Complete runtime configuration threaded into every pipeline component."""

    chunk: ChunkSettings = field(default_factory=ChunkSettings)
    embedder: EmbedderSettings = field(default_factory=EmbedderSettings)
    search: SearchSettings = field(default_factory=SearchSettings)
    ingest: IngestSettings = field(default_factory=IngestSettings)
    evaluation: EvaluationSettings = field(default_factory=EvaluationSettings)
    rag: RagSettings = field(default_factory=RagSettings)
    training: TrainingSettings = field(default_factory=TrainingSettings)
    paths: Paths = field(default_factory=Paths)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def _env_list(name: str) -> list[str] | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return [item.strip() for item in raw.split(",") if item.strip()]


def parse_strategies(items: list[str], boost_terms: list[str] | None = None) -> list[RerankStrategy]:
    """Parse `name=mode` items (a bare mode names itself) into rerank strategies.

    Raises:
        ConfigurationError: If a mode is malformed.
    """
    strategies: list[RerankStrategy] = []
    for item in items:
        name, sep, mode = item.partition("=")
        if not sep:
            name, mode = item, item
        strategies.append(
            RerankStrategy(
                name=name.strip(),
                mode=RerankMode.parse(mode),
                boost_terms=list(boost_terms or []),
            )
        )
    return strategies


def load_settings(env_file: str | None = None) -> Settings:
    """Load environment-backed settings and return a typed config object.

    Reads an optional ``.env`` file via python-dotenv, then the ``RETRIEVAL_*``
    variables. This is the only place the environment is consulted.

    Raises:
        ConfigurationError: If a variable holds a malformed value.
    """
    load_dotenv(env_file)
    settings = Settings(paths=Paths(data_dir=os.getenv("RETRIEVAL_DATA_DIR", "data")))

    settings.chunk.max_tokens = _env_int("RETRIEVAL_MAX_TOKENS", settings.chunk.max_tokens)
    settings.chunk.overlap = _env_int("RETRIEVAL_OVERLAP", settings.chunk.overlap)

    embedder_kind = os.getenv("RETRIEVAL_EMBEDDER")
    if embedder_kind:
        settings.embedder.kind = EmbedderKind.parse(embedder_kind)
    settings.embedder.tf_min_freq = _env_int("RETRIEVAL_TF_MIN_FREQ", settings.embedder.tf_min_freq)
    settings.embedder.normalize_query = _env_bool("RETRIEVAL_NORMALIZE_QUERY", settings.embedder.normalize_query)

    settings.search.top_k = _env_int("RETRIEVAL_TOP_K", settings.search.top_k)
    settings.search.score_threshold = _env_float("RETRIEVAL_SCORE_THRESHOLD", settings.search.score_threshold)

    eval_kinds = _env_list("RETRIEVAL_EVAL_EMBEDDERS")
    if eval_kinds:
        settings.evaluation.embedder_kinds = [EmbedderKind.parse(kind) for kind in eval_kinds]
    settings.evaluation.log_runs = _env_bool("RETRIEVAL_LOG_RUNS", settings.evaluation.log_runs)

    settings.rag.context_budget = _env_int("RETRIEVAL_CONTEXT_BUDGET", settings.rag.context_budget)
    boost_terms = _env_list("RETRIEVAL_BOOST_TERMS")
    modes = _env_list("RETRIEVAL_RERANK_MODES")
    if modes:
        settings.rag.strategies = parse_strategies(modes, boost_terms)
    elif boost_terms:
        for strategy in settings.rag.strategies:
            strategy.boost_terms = list(boost_terms)

    return settings
