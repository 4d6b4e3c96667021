from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from .errors import ConfigurationError
from .schema import RerankedHit, SearchHit

CONTEXT_SEPARATOR = "\n---\n"
QUERY_PLACEHOLDER = "{query}"
CONTEXT_PLACEHOLDER = "{context}"


class RerankMode(str, Enum):
    """How a strategy combines base similarity with the term boost."""

    NONE = "none"
    TERM_OVERLAP = "term_overlap"
    HYBRID = "hybrid"

    @classmethod
    def parse(cls, value: str) -> RerankMode:
        key = value.strip().lower().replace("-", "_")
        for mode in cls:
            if mode.value == key or mode.value.replace("_", "") == key:
                return mode
        raise ConfigurationError(f"malformed rerank mode {value!r}")


@dataclass(slots=True)
class RerankStrategy:
    """Named scoring policy applied to deduplicated search hits."""

    name: str
    mode: RerankMode = RerankMode.NONE
    boost_terms: list[str] = field(default_factory=list)
    boost_factor: float = 0.1
    hybrid_weight: float = 0.5
    threshold: float = 0.0


@dataclass(slots=True)
class RagOutcome:
    """Ranked hits, context block and filled prompt produced by one strategy."""

    strategy: RerankStrategy
    hits: list[SearchHit]
    ranked: list[RerankedHit]
    context: str
    prompt: str

    def ranked_hits(self) -> list[tuple[SearchHit, float]]:
        return [(self.hits[entry.hit_index], entry.score) for entry in self.ranked]


def dedupe_hits(hits: Sequence[SearchHit]) -> list[SearchHit]:
    """Drop hits whose chunk text repeats an earlier hit, ignoring case."""
    seen: set[str] = set()
    unique: list[SearchHit] = []
    for hit in hits:
        fingerprint = hit.chunk.text.lower()
        if fingerprint in seen:
            continue
        seen.add(fingerprint)
        unique.append(hit)
    return unique


def combined_score(base: float, term_score: int, strategy: RerankStrategy) -> float:
    boost = term_score * strategy.boost_factor
    if strategy.mode is RerankMode.TERM_OVERLAP:
        return base + boost
    if strategy.mode is RerankMode.HYBRID:
        return base * (1.0 - strategy.hybrid_weight) + boost * strategy.hybrid_weight
    return base


def rerank_hits(hits: Sequence[SearchHit], strategy: RerankStrategy) -> list[RerankedHit]:
    """Score hits under one strategy.

    Args:
        hits: Deduplicated search hits; results refer to them by position.
        strategy: Scoring policy to apply.

    Returns:
        Hits scoring at least the strategy threshold, best first.
    """
    boost_terms = [term.lower() for term in strategy.boost_terms]
    scored: list[RerankedHit] = []
    for idx, hit in enumerate(hits):
        text = hit.chunk.text.lower()
        term_score = sum(1 for term in boost_terms if term in text)
        score = combined_score(hit.score, term_score, strategy)
        if score >= strategy.threshold:
            scored.append(RerankedHit(hit_index=idx, score=score))
    scored.sort(key=lambda entry: entry.score, reverse=True)
    return scored


def build_context(
    hits: Sequence[SearchHit],
    ranked: Sequence[RerankedHit],
    budget: int,
    separator: str = CONTEXT_SEPARATOR,
) -> str:
    """Concatenate ranked hit texts into a block of at most `budget` characters.

    Whatever crosses the budget, text or separator, is cut to fill it exactly.
    Empty texts are skipped without a separator.
    """
    context = ""
    for entry in ranked:
        remaining = budget - len(context)
        if remaining <= 0:
            break
        addition = hits[entry.hit_index].chunk.text.strip()
        if not addition:
            continue
        if context:
            context += separator[:remaining]
            remaining -= len(separator)
            if remaining <= 0:
                break
        context += addition[:remaining]
    return context


def format_prompt(template: str, query: str, context: str) -> str:
    return template.replace(QUERY_PLACEHOLDER, query).replace(CONTEXT_PLACEHOLDER, context)


def run_rag(
    query: str,
    hits: Sequence[SearchHit],
    strategies: Sequence[RerankStrategy],
    context_budget: int,
    prompt_template: str,
) -> list[RagOutcome]:
    """Deduplicate hits once, then rerank and build a prompt per strategy.

    Strategies do not compose; each one sees the same deduplicated hits.
    """
    unique = dedupe_hits(hits)
    outcomes: list[RagOutcome] = []
    for strategy in strategies:
        ranked = rerank_hits(unique, strategy)
        context = build_context(unique, ranked, context_budget)
        outcomes.append(
            RagOutcome(
                strategy=strategy,
                hits=unique,
                ranked=ranked,
                context=context,
                prompt=format_prompt(prompt_template, query, context),
            )
        )
    return outcomes
