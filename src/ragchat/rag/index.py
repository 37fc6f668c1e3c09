"""In-memory embedding index, rebuilt from the persisted chunk store."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence

from ragchat.db.models import Chunk
from ragchat.db.repository import Repository

logger = logging.getLogger(__name__)

# (query dims, chunk dims) pairs already reported
_reported_mismatches: set[tuple[int, int]] = set()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of *a* and *b*, in [-1, 1].

    Returns 0.0 when either vector has zero norm, and when the vectors have
    different dimensions (e.g. chunks embedded with an earlier model).
    """
    if len(a) != len(b):
        dims = (len(a), len(b))
        if dims not in _reported_mismatches:
            _reported_mismatches.add(dims)
            logger.warning(
                "Embedding dimension mismatch (%d vs %d); re-ingest documents "
                "after changing the embedding model.",
                *dims,
            )
        return 0.0
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    score = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    return max(-1.0, min(1.0, score))


class EmbeddingIndex:
    """Ordered ``(chunk, vector)`` collection held for retrieval.

    Loaded in full from the repository, then kept read-mostly: ingestion
    appends, document deletion removes by document id.
    """

    def __init__(self, chunks: Iterable[Chunk] = ()) -> None:
        self._chunks: list[Chunk] = list(chunks)

    @classmethod
    def load(cls, repo: Repository) -> EmbeddingIndex:
        """Rebuild the index from every valid chunk in the store."""
        return cls(repo.list_chunks())

    def __len__(self) -> int:
        return len(self._chunks)

    def __bool__(self) -> bool:
        return bool(self._chunks)

    @property
    def chunks(self) -> list[Chunk]:
        """A snapshot copy of the indexed chunks in insertion order."""
        return list(self._chunks)

    def add(self, chunks: Iterable[Chunk]) -> None:
        known = {c.id for c in self._chunks}
        for chunk in chunks:
            if chunk.id not in known:
                self._chunks.append(chunk)
                known.add(chunk.id)

    def remove_document(self, document_id: str) -> int:
        """Drop every chunk of *document_id*. Returns the number removed."""
        before = len(self._chunks)
        self._chunks = [c for c in self._chunks if c.document_id != document_id]
        return before - len(self._chunks)

    def clear(self) -> None:
        self._chunks = []
