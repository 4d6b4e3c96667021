from __future__ import annotations

from collections.abc import Iterable

from .embeddings import cosine_similarity
from .schema import IndexEntry, SparseVector


class VectorIndex:
    """In-memory exhaustive cosine index over sparse chunk vectors."""

    def __init__(self, entries: Iterable[IndexEntry] | None = None):
        self._entries: list[IndexEntry] = list(entries or [])

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> list[IndexEntry]:
        return self._entries

    def add_chunk(self, chunk_id: str, doc_id: str, vector: SparseVector) -> IndexEntry:
        entry = IndexEntry(chunk_id=chunk_id, doc_id=doc_id, vector=vector)
        self._entries.append(entry)
        return entry

    def search(self, query_vector: SparseVector, top_k: int = 5) -> list[tuple[int, float]]:
        """Rank stored entries against a query vector.

        Args:
            query_vector: Embedded query.
            top_k: Maximum number of matches to return.

        Returns:
            `(entry_index, score)` pairs with positive scores, best first.
            An empty query vector yields no matches.
        """
        if not query_vector or top_k <= 0:
            return []
        scored = [
            (idx, score)
            for idx, entry in enumerate(self._entries)
            if (score := cosine_similarity(query_vector, entry.vector)) > 0.0
        ]
        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[:top_k]
