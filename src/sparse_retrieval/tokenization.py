from __future__ import annotations

import regex

# Unicode default word boundaries (UAX #29): "don't" and "3.14" stay whole,
# ideographs split one per character.
_BOUNDARY = regex.compile(r"\b", flags=regex.WORD | regex.V1)


def _words(text: str) -> list[str]:
    return [segment for segment in _BOUNDARY.split(text) if any(ch.isalnum() for ch in segment)]


def tokenize(text: str) -> list[str]:
    """Split text into lowercase word tokens shared by chunk sizing and embedding.

    Segments between word boundaries count as words only when they hold a letter or digit,
    so whitespace and punctuation runs are dropped.
    """
    return [word.lower() for word in _words(text)]


def token_count(text: str) -> int:
    return len(_words(text))
