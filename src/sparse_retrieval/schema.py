from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

SparseVector = dict[str, float]


class ChunkStrategy(str, Enum):
    """Segmentation policy used to produce a chunk."""

    STRUCTURED = "structured"
    FIXED = "fixed"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class Document:
    """Ingested source file tracked by the corpus."""

    id: str
    path: str
    hash: str
    token_count: int


@dataclass(slots=True, frozen=True)
class Chunk:
    """Normalized passage of a document; the unit of retrieval.

    `start` and `end` are UTF-8 byte offsets into the normalized document text.
    """

    id: str
    doc_id: str
    text: str
    start: int
    end: int
    strategy: ChunkStrategy

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "doc_id": self.doc_id,
            "text": self.text,
            "start": self.start,
            "end": self.end,
            "strategy": self.strategy.value,
        }

    @classmethod
    def from_record(cls, record: dict) -> Chunk:
        return cls(
            id=record["id"],
            doc_id=record["doc_id"],
            text=record["text"],
            start=int(record["start"]),
            end=int(record["end"]),
            strategy=ChunkStrategy(record["strategy"]),
        )


@dataclass(slots=True)
class IndexEntry:
    """Link between one chunk and its embedding."""

    chunk_id: str
    doc_id: str
    vector: SparseVector


@dataclass(slots=True)
class SearchHit:
    """Index match joined with its chunk and document records."""

    chunk: Chunk
    document: Document
    score: float


@dataclass(slots=True)
class RerankedHit:
    """Strategy-specific score for the hit at `hit_index` in the owning hit list."""

    hit_index: int
    score: float


@dataclass(slots=True)
class EvaluationQuery:
    """Labeled query with the ground-truth terms its hits should contain."""

    name: str
    query: str
    expected_terms: list[str] = field(default_factory=list)
    top_k: int | None = None


@dataclass(slots=True)
class QueryReport:
    """Single-query evaluation output used for aggregate reporting."""

    name: str
    top_k: int
    recall: float
    mrr: float
    ndcg: float
    hits: int
    expected: int
    latency_ms: float = 0.0


@dataclass(slots=True)
class AggregatedMetrics:
    """Mean metrics across all evaluation queries for one embedder."""

    recall: float
    mrr: float
    ndcg: float
    avg_latency_ms: float
    index_size: int


@dataclass(slots=True)
class EvaluationRun:
    """Run-log record for one (embedder, evaluation pass)."""

    timestamp: str
    embedder: str
    metrics: AggregatedMetrics
    queries: list[QueryReport]


@dataclass(slots=True)
class ModelManifest:
    """Trained token-weight table consumed by the custom embedder."""

    name: str
    version: str
    trained_at: str
    example_count: int
    token_weights: dict[str, float]
