"""Local sparse-vector document retrieval: chunking, embedding, search, reranking and evaluation."""

from .schema import Chunk, ChunkStrategy, Document, EvaluationQuery, IndexEntry, SearchHit

__all__ = ["Chunk", "ChunkStrategy", "Document", "EvaluationQuery", "IndexEntry", "SearchHit"]
