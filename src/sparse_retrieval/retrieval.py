from __future__ import annotations

from .corpus import CorpusState
from .embeddings import Embedder
from .errors import ConsistencyError
from .normalization import normalize
from .schema import SearchHit
from .vector_store import VectorIndex


def search_hits(
    embedder: Embedder,
    query: str,
    top_k: int,
    corpus: CorpusState,
    index: VectorIndex,
    score_threshold: float = 0.0,
    normalize_query: bool = True,
) -> list[SearchHit]:
    """Embed a query, search the index and join matches with corpus records.

    Args:
        embedder: Embedder used for the query; must match the one used at ingest.
        query: Raw query text.
        top_k: Maximum number of hits.
        corpus: Corpus holding the chunk and document records.
        index: Vector index built from the corpus entries.
        score_threshold: Minimum similarity kept (inclusive).
        normalize_query: Re-run the normalizer on the query before embedding.

    Returns:
        Hits in descending score order.

    Raises:
        ConsistencyError: If a match points at a missing entry, chunk or document.
    """
    query_text = normalize(query) if normalize_query else query
    matches = index.search(embedder.embed(query_text), top_k)

    hits: list[SearchHit] = []
    for idx, score in matches:
        if score < score_threshold:
            continue
        if not 0 <= idx < len(index):
            raise ConsistencyError(f"search result {idx} is outside the index ({len(index)} entries)")
        entry = index.entries[idx]
        chunk = corpus.find_chunk(entry.chunk_id)
        if chunk is None:
            raise ConsistencyError(f"chunk metadata missing for {entry.chunk_id}")
        document = corpus.find_document(entry.doc_id)
        if document is None:
            raise ConsistencyError(f"document metadata missing for {entry.doc_id}")
        hits.append(SearchHit(chunk=chunk, document=document, score=score))
    return hits
