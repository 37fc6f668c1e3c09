"""Hybrid retriever: dense cosine similarity + lexical keyword overlap.

Scoring, per chunk:
  vector_score   = cosine(query_embedding, chunk.embedding)
  lexical_score  = lexical_increment x (query words found in chunk text)
  combined_score = vector_weight x vector_score + lexical_weight x lexical_score

Query words are the lowercase ``\\W+``-separated tokens of at least
``min_word_length`` characters; a word matches when it is a substring of the
lowercased chunk text. Candidates under ``min_score`` are dropped, the rest
are sorted best-first (stable, so ties keep index order) and cut to ``top_k``.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from ragchat.db.models import Chunk
from ragchat.rag.index import cosine_similarity

EmbedFn = Callable[[str], Awaitable[list[float]]]

_WORD_SPLIT_RE = re.compile(r"\W+")


@dataclass
class RetrieverConfig:
    """Configuration for the hybrid retriever.

    Attributes:
        vector_weight: Weight of the cosine similarity in the combined score.
        lexical_weight: Weight of the keyword score in the combined score.
        lexical_increment: Score added per query word found in a chunk.
        min_score: Candidates with a combined score below this are dropped.
        top_k: Maximum number of chunks to return.
        min_word_length: Shortest query word counted for lexical matching.
    """

    vector_weight: float = 0.7
    lexical_weight: float = 0.3
    lexical_increment: float = 0.15
    min_score: float = 0.3
    top_k: int = 15
    min_word_length: int = 3


@dataclass
class ScoredChunk:
    """A retrieval candidate with its per-channel and combined scores."""

    chunk: Chunk
    vector_score: float
    lexical_score: float
    combined_score: float


async def retrieve(
    query: str,
    chunks: Sequence[Chunk],
    embed_query: EmbedFn,
    config: RetrieverConfig,
) -> list[ScoredChunk]:
    """Score *chunks* against *query* and return the best candidates, best-first.

    No embedding call is made when *chunks* is empty.

    Raises:
        Whatever *embed_query* raises (CapabilityUnavailableError,
        ProviderError); callers decide how to degrade.
    """
    if not chunks:
        return []

    query_embedding = await embed_query(query)
    return rank(query, query_embedding, chunks, config)


def rank(
    query: str,
    query_embedding: Sequence[float],
    chunks: Sequence[Chunk],
    config: RetrieverConfig,
) -> list[ScoredChunk]:
    """Score, filter, sort and truncate. Pure and synchronous."""
    words = query_words(query, config.min_word_length)

    scored: list[ScoredChunk] = []
    for chunk in chunks:
        vector_score = cosine_similarity(query_embedding, chunk.embedding)
        lexical_score = lexical_overlap(words, chunk.text, config.lexical_increment)
        combined = (
            config.vector_weight * vector_score + config.lexical_weight * lexical_score
        )
        if combined < config.min_score:
            continue
        scored.append(
            ScoredChunk(
                chunk=chunk,
                vector_score=vector_score,
                lexical_score=lexical_score,
                combined_score=combined,
            )
        )

    scored.sort(key=lambda s: s.combined_score, reverse=True)
    return scored[: config.top_k]


def query_words(query: str, min_length: int = 3) -> list[str]:
    """Lowercase query tokens of at least *min_length* characters."""
    return [w for w in _WORD_SPLIT_RE.split(query.lower()) if len(w) >= min_length]


def lexical_overlap(words: Sequence[str], text: str, increment: float = 0.15) -> float:
    """``increment`` per query word that occurs as a substring of *text*."""
    haystack = text.lower()
    return sum(increment for w in words if w in haystack)
