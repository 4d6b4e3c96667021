from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from .errors import ConfigurationError
from .models import load_manifest
from .schema import ModelManifest, SparseVector
from .tokenization import token_count, tokenize


@runtime_checkable
class Embedder(Protocol):
    def name(self) -> str: ...
    def embed(self, text: str) -> SparseVector: ...
    def token_count(self, text: str) -> int: ...


def _term_frequencies(text: str, min_freq: int = 1) -> SparseVector:
    counts = Counter(tokenize(text))
    kept = {token: count for token, count in counts.items() if count >= min_freq}
    total = sum(kept.values())
    if total == 0:
        return {}
    return {token: count / total for token, count in kept.items()}


class TfEmbedder:
    """Term-frequency embedder: counts at or above `min_freq`, normalized to sum to 1."""

    def __init__(self, min_freq: int = 1):
        self.min_freq = min_freq

    def name(self) -> str:
        return "tf"

    def embed(self, text: str) -> SparseVector:
        return _term_frequencies(text, self.min_freq)

    def token_count(self, text: str) -> int:
        return token_count(text)


class BagOfWordsEmbedder:
    """Unfiltered term-frequency embedder."""

    def name(self) -> str:
        return "bow"

    def embed(self, text: str) -> SparseVector:
        return _term_frequencies(text)

    def token_count(self, text: str) -> int:
        return token_count(text)


class CustomEmbedder:
    """Embedder backed by a trained token-weight table.

    Tokens found in the table keep their trained weight verbatim; everything
    else contributes nothing. No renormalization is applied.
    """

    def __init__(self, manifest: ModelManifest):
        self.manifest = manifest

    @classmethod
    def load(cls, models_dir: str | Path, name: str, version: str | None = None) -> CustomEmbedder:
        return cls(load_manifest(models_dir, name, version))

    def name(self) -> str:
        return f"custom:{self.manifest.name}@{self.manifest.version}"

    def embed(self, text: str) -> SparseVector:
        weights = self.manifest.token_weights
        return {token: weights[token] for token in tokenize(text) if token in weights}

    def token_count(self, text: str) -> int:
        return token_count(text)


@dataclass(slots=True, frozen=True)
class EmbedderKind:
    """Closed embedder selection: `tf`, `bow`, or `custom` with a model name/version."""

    kind: str
    model_name: str = ""
    version: str | None = None

    KINDS = ("tf", "bow", "custom")

    def __post_init__(self) -> None:
        if self.kind not in self.KINDS:
            raise ConfigurationError(f"unknown embedder kind {self.kind!r}")
        if self.kind == "custom" and not self.model_name.strip():
            raise ConfigurationError("custom embedder requires a model name")

    @classmethod
    def parse(cls, value: str) -> EmbedderKind:
        """Parse `tf`, `bow`, `bag-of-words`, `custom:<name>` or `custom:<name>@<version>`."""
        raw = value.strip()
        lowered = raw.lower()
        if lowered == "tf":
            return cls("tf")
        if lowered in ("bow", "bag-of-words", "bag_of_words"):
            return cls("bow")
        if lowered == "custom" or lowered.startswith("custom:"):
            selector = raw.partition(":")[2]
            name, _, version = selector.partition("@")
            return cls("custom", model_name=name.strip(), version=version.strip() or None)
        raise ConfigurationError(f"unknown embedder kind {value!r}")

    def __str__(self) -> str:
        if self.kind != "custom":
            return self.kind
        suffix = f"@{self.version}" if self.version else ""
        return f"custom:{self.model_name}{suffix}"


def build_embedder(kind: EmbedderKind, min_freq: int = 1, models_dir: str | Path = "models") -> Embedder:
    """Resolve an embedder selection into a concrete embedder.

    Args:
        kind: Parsed embedder selection.
        min_freq: Minimum token count kept by the TF embedder.
        models_dir: Root of the model store, used by custom embedders.

    Returns:
        An object implementing the `Embedder` protocol.

    Raises:
        ResourceError: If a custom model manifest cannot be resolved or read.
    """
    if kind.kind == "tf":
        return TfEmbedder(min_freq=min_freq)
    if kind.kind == "bow":
        return BagOfWordsEmbedder()
    return CustomEmbedder.load(models_dir, kind.model_name, kind.version)


def cosine_similarity(a: SparseVector, b: SparseVector) -> float:
    """Cosine similarity of two sparse vectors; 0.0 when either has zero norm.

    Shared tokens are summed in sorted order so the result is exactly symmetric.
    """
    norm_a = math.sqrt(sum(value * value for value in a.values()))
    norm_b = math.sqrt(sum(value * value for value in b.values()))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    dot = sum(a[token] * b[token] for token in sorted(a.keys() & b.keys()))
    return dot / (norm_a * norm_b)
