from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from .schema import Chunk, Document, IndexEntry


@dataclass(slots=True)
class CorpusState:
    """Documents, chunks and index entries owned by one corpus snapshot."""

    documents: list[Document] = field(default_factory=list)
    chunks: list[Chunk] = field(default_factory=list)
    index_entries: list[IndexEntry] = field(default_factory=list)
    _chunks_by_id: dict[str, Chunk] = field(default_factory=dict, init=False, repr=False, compare=False)
    _documents_by_id: dict[str, Document] = field(default_factory=dict, init=False, repr=False, compare=False)
    _hashes: set[str] = field(default_factory=set, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._chunks_by_id = {chunk.id: chunk for chunk in self.chunks}
        self._documents_by_id = {document.id: document for document in self.documents}
        self._hashes = {document.hash for document in self.documents}

    def find_chunk(self, chunk_id: str) -> Chunk | None:
        return self._chunks_by_id.get(chunk_id)

    def find_document(self, doc_id: str) -> Document | None:
        return self._documents_by_id.get(doc_id)

    def has_document(self, content_hash: str) -> bool:
        return content_hash in self._hashes

    def add_document(self, document: Document, chunks: Iterable[Chunk], entries: Iterable[IndexEntry]) -> None:
        """Append one ingested document together with its chunks and index entries."""
        self.documents.append(document)
        self._documents_by_id[document.id] = document
        self._hashes.add(document.hash)
        for chunk in chunks:
            self.chunks.append(chunk)
            self._chunks_by_id[chunk.id] = chunk
        self.index_entries.extend(entries)
