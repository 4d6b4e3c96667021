"""Shared pytest fixtures for sparse_retrieval unit tests."""
from __future__ import annotations

import pytest

from sparse_retrieval.corpus import CorpusState
from sparse_retrieval.embeddings import TfEmbedder
from sparse_retrieval.schema import Chunk, ChunkStrategy, Document, EvaluationQuery, SearchHit
from sparse_retrieval.settings import Paths, Settings
from sparse_retrieval.vector_store import VectorIndex


def make_chunk(chunk_id: str, text: str, doc_id: str = "DOC-001", start: int = 0) -> Chunk:
    return Chunk(
        id=chunk_id,
        doc_id=doc_id,
        text=text,
        start=start,
        end=start + len(text.encode("utf-8")),
        strategy=ChunkStrategy.STRUCTURED,
    )


def make_document(doc_id: str = "DOC-001", path: str = "doc.txt") -> Document:
    return Document(id=doc_id, path=path, hash=f"hash-{doc_id}", token_count=0)


def make_hit(chunk_id: str, text: str, score: float = 0.5, doc_id: str = "DOC-001") -> SearchHit:
    return SearchHit(chunk=make_chunk(chunk_id, text, doc_id=doc_id), document=make_document(doc_id), score=score)


@pytest.fixture()
def sample_texts() -> dict[str, str]:
    return {
        "C-remote": "Employees may work remotely from home.",
        "C-international": "Working from another country is capped at 14 days.",
        "C-security": "Lost devices must be reported within one hour. Use the VPN.",
    }


@pytest.fixture()
def sample_corpus(sample_texts) -> tuple[CorpusState, VectorIndex]:
    """Corpus of three single-chunk documents indexed with the TF embedder."""
    embedder = TfEmbedder()
    state = CorpusState()
    index = VectorIndex()
    for number, (chunk_id, text) in enumerate(sample_texts.items(), start=1):
        doc_id = f"DOC-00{number}"
        chunk = make_chunk(chunk_id, text, doc_id=doc_id)
        entry = index.add_chunk(chunk.id, doc_id, embedder.embed(text))
        state.add_document(make_document(doc_id, path=f"{chunk_id}.txt"), [chunk], [entry])
    return state, index


@pytest.fixture()
def sample_query() -> EvaluationQuery:
    return EvaluationQuery(name="remote", query="work remotely", expected_terms=["remotely"], top_k=3)


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(paths=Paths(data_dir=str(tmp_path / "data")))
