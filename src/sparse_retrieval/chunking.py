from __future__ import annotations

import re
import uuid
from collections.abc import Sequence
from typing import TYPE_CHECKING

from .errors import ConfigurationError
from .normalization import normalize
from .schema import Chunk, ChunkStrategy

if TYPE_CHECKING:
    from .settings import ChunkSettings

DEFAULT_SEPARATORS = ("\n\n", "\r\n\r\n", "\n-\n", "\n*\n")

_WORD_SPAN = re.compile(r"\S+")


def _byte_offsets(text: str) -> list[int]:
    """Map every character index (plus the end) to its UTF-8 byte offset."""
    offsets = [0] * (len(text) + 1)
    total = 0
    for idx, char in enumerate(text):
        offsets[idx] = total
        total += len(char.encode("utf-8"))
    offsets[len(text)] = total
    return offsets


def find_split(text: str, cursor: int, separators: Sequence[str]) -> tuple[int, int]:
    """Locate the leftmost separator at or after `cursor`.

    Returns:
        `(split_index, separator_length)`; `(len(text), 0)` when none matches.
    """
    best: tuple[int, int] | None = None
    for separator in separators:
        if not separator:
            continue
        idx = text.find(separator, cursor)
        if idx == -1:
            continue
        if best is None or idx < best[0]:
            best = (idx, len(separator))
    return best if best is not None else (len(text), 0)


def token_spans(text: str) -> list[tuple[int, int]]:
    """Return `(start, end)` character spans of whitespace-delimited tokens."""
    return [match.span() for match in _WORD_SPAN.finditer(text)]


class Chunker:
    """Split normalized document text into ordered chunks.

    Structured chunking splits on the leftmost configured separator; fixed
    chunking slides a token window of `max_tokens` with `overlap` tokens shared
    between consecutive windows.
    """

    def __init__(
        self,
        strategy: ChunkStrategy = ChunkStrategy.STRUCTURED,
        max_tokens: int = 200,
        overlap: int = 32,
        split_on_separators: bool = True,
        dedupe_segments: bool = True,
        separators: Sequence[str] = DEFAULT_SEPARATORS,
    ):
        if max_tokens < 1:
            raise ConfigurationError(f"max_tokens must be at least 1, got {max_tokens}")
        if overlap < 0:
            raise ConfigurationError(f"overlap must not be negative, got {overlap}")
        self.strategy = ChunkStrategy(strategy)
        self.max_tokens = max_tokens
        self.overlap = overlap
        self.split_on_separators = split_on_separators
        self.dedupe_segments = dedupe_segments
        self.separators = list(separators)

    @classmethod
    def from_settings(cls, strategy: ChunkStrategy, settings: ChunkSettings) -> Chunker:
        return cls(
            strategy=strategy,
            max_tokens=settings.max_tokens,
            overlap=settings.overlap,
            split_on_separators=settings.split_on_separators,
            dedupe_segments=settings.dedupe_segments,
            separators=settings.separators,
        )

    @property
    def step(self) -> int:
        return max(self.max_tokens - self.overlap, 1)

    def chunk(self, doc_id: str, text: str) -> list[Chunk]:
        """Chunk one document.

        Args:
            doc_id: Id of the owning document.
            text: Normalized document text.

        Returns:
            Chunks in source order; dedup state is local to this call.
        """
        if self.strategy is ChunkStrategy.FIXED:
            return self._fixed(doc_id, text)
        return self._structured(doc_id, text)

    def _structured(self, doc_id: str, text: str) -> list[Chunk]:
        offsets = _byte_offsets(text)
        seen: set[str] | None = set() if self.dedupe_segments else None
        chunks: list[Chunk] = []
        cursor = 0
        while cursor < len(text):
            if self.split_on_separators:
                split_at, separator_len = find_split(text, cursor, self.separators)
            else:
                split_at, separator_len = len(text), 0
            chunk = self._segment(doc_id, text, cursor, split_at, offsets, seen)
            if chunk is not None:
                chunks.append(chunk)
            if split_at == len(text):
                break
            cursor = split_at + separator_len
            while cursor < len(text) and text[cursor].isspace():
                cursor += 1
        return chunks

    def _fixed(self, doc_id: str, text: str) -> list[Chunk]:
        spans = token_spans(text)
        if not spans:
            return []
        offsets = _byte_offsets(text)
        seen: set[str] | None = set() if self.dedupe_segments else None
        chunks: list[Chunk] = []
        cursor = 0
        while cursor < len(spans):
            end = min(cursor + self.max_tokens, len(spans))
            chunk = self._segment(doc_id, text, spans[cursor][0], spans[end - 1][1], offsets, seen)
            if chunk is not None:
                chunks.append(chunk)
            if end == len(spans):
                break
            cursor += self.step
        return chunks

    def _segment(
        self,
        doc_id: str,
        text: str,
        start: int,
        end: int,
        offsets: list[int],
        seen: set[str] | None,
    ) -> Chunk | None:
        segment = text[start:end]
        trimmed = segment.strip()
        if not trimmed:
            return None
        if seen is not None:
            if trimmed in seen:
                return None
            seen.add(trimmed)
        trimmed_start = start + (len(segment) - len(segment.lstrip()))
        trimmed_end = start + len(segment.rstrip())
        return Chunk(
            id=str(uuid.uuid4()),
            doc_id=doc_id,
            text=normalize(trimmed),
            start=offsets[trimmed_start],
            end=offsets[trimmed_end],
            strategy=self.strategy,
        )
