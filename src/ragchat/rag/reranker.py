"""LLM reranker: pick the best few retrieval candidates.

The reasoning model receives an enumerated listing of the candidates
(index, source title, text excerpt) and must answer with a JSON array of the
indices of the best ``top_n``, most relevant first. Any failure (missing key,
provider error, malformed or out-of-range answer) falls back to the first
``top_n`` candidates in input order. The reranker never raises.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from ragchat.db.models import Chunk
from ragchat.rag.llm_client import complete

logger = logging.getLogger(__name__)

T = TypeVar("T")

CompleteFn = Callable[[list[dict]], Awaitable[str]]

_EXCERPT_CHARS = 400

_RERANK_SYSTEM = (
    "You are a relevance judge for a retrieval system. You receive a user query "
    "and numbered document excerpts. Select the excerpts that best answer the "
    "query. Output ONLY a JSON array of integer indices, most relevant first, "
    "with no explanations."
)


@dataclass
class RerankerConfig:
    model: str = "gemini/gemini-2.0-flash"
    top_n: int = 5
    timeout: float = 30.0


class Reranker:
    """Second-pass relevance ordering backed by a reasoning model.

    Args:
        config: Model and output size.
        complete_fn: Optional override for the completion call (takes the
            message list, returns the raw text). Defaults to
            ``llm_client.complete`` with the configured model.
    """

    def __init__(
        self,
        config: RerankerConfig | None = None,
        complete_fn: CompleteFn | None = None,
    ) -> None:
        self._config = config or RerankerConfig()
        self._complete = complete_fn or self._default_complete

    async def rerank(self, query: str, candidates: Sequence[T]) -> list[T]:
        """Return at most ``top_n`` of *candidates*, most relevant first.

        Candidates may be ``Chunk`` or anything with a ``.chunk`` attribute.
        When there are no more than ``top_n`` candidates they are returned
        unchanged and no model call is made.
        """
        top_n = self._config.top_n
        if len(candidates) <= top_n:
            return list(candidates)

        messages = [
            {"role": "system", "content": _RERANK_SYSTEM},
            {"role": "user", "content": build_rerank_prompt(query, candidates, top_n)},
        ]
        try:
            raw = await self._complete(messages)
            order = parse_indices(raw, len(candidates), top_n)
        except Exception as exc:
            logger.warning("Reranking failed, keeping retrieval order: %s", exc)
            return list(candidates[:top_n])

        if order is None:
            logger.warning("Reranker returned a malformed answer, keeping retrieval order")
            return list(candidates[:top_n])
        return [candidates[i] for i in order]

    async def _default_complete(self, messages: list[dict]) -> str:
        return await complete(
            model=self._config.model,
            messages=messages,
            max_tokens=128,
            temperature=0,
            timeout=self._config.timeout,
            capability="rerank",
        )


def build_rerank_prompt(query: str, candidates: Sequence[object], top_n: int) -> str:
    """Enumerate candidates as ``[i] (title) excerpt`` lines under the query."""
    lines = []
    for i, candidate in enumerate(candidates):
        chunk = _as_chunk(candidate)
        excerpt = " ".join(chunk.text[:_EXCERPT_CHARS].split())
        lines.append(f"[{i}] ({chunk.document_title}) {excerpt}")
    listing = "\n".join(lines)
    return (
        f"Query: {query}\n\n"
        f"Excerpts:\n{listing}\n\n"
        f"Return the indices of the {top_n} most relevant excerpts as a JSON array "
        f"of integers, e.g. [3, 0, 7]."
    )


def parse_indices(raw: str, candidate_count: int, top_n: int) -> list[int] | None:
    """Parse the model answer as a strict JSON list of in-range integers.

    Duplicates are dropped (first occurrence wins) and the result is cut to
    *top_n*. Returns None if the answer is not a non-empty list of valid
    indices.
    """
    try:
        start = raw.index("[")
        end = raw.rindex("]") + 1
        arr = json.loads(raw[start:end])
    except (ValueError, json.JSONDecodeError, TypeError):
        return None
    if not isinstance(arr, list) or not arr:
        return None

    order: list[int] = []
    for value in arr:
        if isinstance(value, bool) or not isinstance(value, int):
            return None
        if not 0 <= value < candidate_count:
            return None
        if value not in order:
            order.append(value)
    return order[:top_n]


def _as_chunk(candidate: object) -> Chunk:
    if isinstance(candidate, Chunk):
        return candidate
    return candidate.chunk  # type: ignore[attr-defined]
