"""One chat turn, end to end: retrieve → rerank → synthesize → persist.

``ChatService.send()`` is an async generator of assistant ``Message``
snapshots. Each snapshot is a copy holding the cumulative answer text, so
the consumer only has to render the latest one. Only one turn may be in
flight; a second ``send()`` raises ``TurnInProgressError``.

Failure handling per turn:
- retrieval errors (missing embedding key, provider failure) are logged and
  the answer proceeds without local context;
- reranker errors never surface (the reranker falls back on its own);
- synthesis errors become the assistant message text, with ``streaming``
  cleared, and that message is persisted like any completed answer.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing

from ragchat.chat.session_store import ChatState, SessionStore
from ragchat.db.models import Chunk, Message
from ragchat.db.repository import Repository
from ragchat.errors import TurnInProgressError
from ragchat.rag.index import EmbeddingIndex
from ragchat.rag.reranker import Reranker
from ragchat.rag.retriever import RetrieverConfig, retrieve
from ragchat.rag.synthesizer import AnswerRequest, Synthesizer

logger = logging.getLogger(__name__)

EmbedFn = Callable[[str], Awaitable[list[float]]]

FAILURE_PREFIX = "Answer generation failed"
INTERRUPTED_TEXT = "Answer generation was interrupted."


def failure_text(exc: BaseException) -> str:
    reason = str(exc) or type(exc).__name__
    return f"{FAILURE_PREFIX}: {reason}"


class ChatService:
    """Runs chat turns against the document index and the session store."""

    def __init__(
        self,
        repo: Repository,
        index: EmbeddingIndex,
        store: SessionStore,
        synthesizer: Synthesizer,
        embed_query: EmbedFn,
        retriever_config: RetrieverConfig | None = None,
        reranker: Reranker | None = None,
    ) -> None:
        self._repo = repo
        self._index = index
        self._store = store
        self._synthesizer = synthesizer
        self._embed_query = embed_query
        self._retriever_config = retriever_config or RetrieverConfig()
        self._reranker = reranker
        self._in_flight = False

    @property
    def busy(self) -> bool:
        return self._in_flight

    async def retrieve_context(self, query: str) -> list[Chunk]:
        """Best chunks for *query*; an empty list if retrieval is unavailable."""
        chunks = self._index.chunks
        if not chunks:
            return []
        try:
            candidates = await retrieve(
                query, chunks, self._embed_query, self._retriever_config
            )
        except Exception as exc:
            logger.warning("Retrieval failed, answering without local context: %s", exc)
            return []
        if self._reranker is not None and candidates:
            candidates = await self._reranker.rerank(query, candidates)
        return [c.chunk for c in candidates]

    async def send(
        self,
        state: ChatState,
        text: str,
        *,
        live_search: bool = False,
    ) -> AsyncIterator[Message]:
        """Run one turn and yield assistant message snapshots.

        The first snapshot is the empty streaming placeholder; the last one
        is the persisted final message (``streaming=False``).

        Raises:
            TurnInProgressError: Another turn is still streaming.
            ValueError: *text* is blank.
        """
        if self.busy:
            raise TurnInProgressError("wait for the current answer to finish")
        if not text.strip():
            raise ValueError("message text is empty")

        self._in_flight = True
        try:
            history = list(state.messages) if state.current_session_id else []
            user_msg = Message(id=_new_id(), role="user", content=text)
            if state.current_session_id is None:
                self._store.create_draft_from_first_message(state, user_msg)
            else:
                self._store.append_to_active_session(state, user_msg)

            reply = Message(id=_new_id(), role="assistant", content="", streaming=True)
            self._store.append_to_active_session(state, reply)

            try:
                yield dataclasses.replace(reply)
                chunks = await self.retrieve_context(text)
                request = AnswerRequest(
                    query=text,
                    history=history,
                    profile=self._repo.load_profile(),
                    chunks=chunks,
                    all_titles=[d.title for d in self._repo.list_documents()],
                    live_search=live_search,
                )
                async with aclosing(self._synthesizer.stream(request)) as snapshots:
                    async for snap in snapshots:
                        reply.content = snap.text
                        reply.sources = list(snap.sources)
                        reply.grounding_sources = snap.grounding_sources
                        if not snap.done:
                            yield dataclasses.replace(reply)
                reply.streaming = False
            except Exception as exc:
                logger.warning("Answer generation failed: %s", exc)
                reply.content = failure_text(exc)
                reply.sources = []
                reply.grounding_sources = None
                reply.streaming = False
            finally:
                if reply.streaming:
                    # Consumer stopped reading before the answer finished.
                    reply.streaming = False
                    reply.content = reply.content or INTERRUPTED_TEXT
                self._store.persist_active_session(state)

            yield dataclasses.replace(reply)
        finally:
            self._in_flight = False


def _new_id() -> str:
    return uuid.uuid4().hex
