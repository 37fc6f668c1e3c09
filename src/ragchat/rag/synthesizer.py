"""Answer synthesizer: prompt → streamed or single-shot completion.

Streaming yields cumulative ``AnswerSnapshot`` values: every snapshot holds
the full text so far plus the current sources, so a consumer only ever
renders the latest one. The provider stream is opened under
``contextlib.aclosing`` and is released on completion, on error, and when
the consumer stops early.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field

from ragchat.db.models import Chunk, GroundingSource, Message, UserProfile
from ragchat.rag import llm_client
from ragchat.rag.prompt import PromptFlags, PromptSpec, build_prompt

EMPTY_ANSWER = "I'm sorry, I couldn't generate a response."

StreamFn = Callable[[list[dict]], AsyncIterator[str]]
CompleteFn = Callable[[list[dict]], Awaitable[str]]
SearchFn = Callable[[list[dict]], Awaitable[tuple[str, list[GroundingSource]]]]


@dataclass
class SynthesizerConfig:
    model: str = "groq/llama-3.3-70b-versatile"
    temperature: float = 0.6
    max_tokens: int = 4096
    history_turns: int = 12
    timeout: float = 60.0
    web_search_model: str = "openai/gpt-4o-search-preview"
    web_search_context_size: str = "medium"


@dataclass
class AnswerRequest:
    query: str
    history: Sequence[Message] = ()
    profile: UserProfile = field(default_factory=UserProfile)
    chunks: Sequence[Chunk] = ()
    all_titles: Sequence[str] = ()
    live_search: bool = False


@dataclass
class AnswerSnapshot:
    text: str
    sources: list[str] = field(default_factory=list)
    grounding_sources: list[GroundingSource] | None = None
    done: bool = False


def sources_of(chunks: Sequence[Chunk]) -> list[str]:
    """Distinct document titles of *chunks*, in first-seen order."""
    return list(dict.fromkeys(c.document_title for c in chunks))


class Synthesizer:
    """Drives one answer from an ``AnswerRequest``.

    The provider calls are injectable (``stream_fn``, ``complete_fn``,
    ``search_fn``); the defaults go through ``llm_client`` with the
    configured models.
    """

    def __init__(
        self,
        config: SynthesizerConfig | None = None,
        *,
        stream_fn: StreamFn | None = None,
        complete_fn: CompleteFn | None = None,
        search_fn: SearchFn | None = None,
    ) -> None:
        self._config = config or SynthesizerConfig()
        self._stream_fn = stream_fn or self._default_stream
        self._complete_fn = complete_fn or self._default_complete
        self._search_fn = search_fn or self._default_search

    def prompt_for(self, request: AnswerRequest) -> PromptSpec:
        return build_prompt(
            request.profile,
            request.history,
            request.query,
            request.chunks,
            request.all_titles,
            PromptFlags(
                live_search=request.live_search,
                history_turns=self._config.history_turns,
            ),
        )

    async def stream(self, request: AnswerRequest) -> AsyncIterator[AnswerSnapshot]:
        """Yield cumulative snapshots; the last one has ``done=True``.

        With ``live_search`` the answer comes from the search-grounded model
        in one step and its citations are returned as ``grounding_sources``.

        Raises:
            CapabilityUnavailableError, ProviderError: From the provider.
        """
        messages = self.prompt_for(request).as_chat_messages()
        sources = sources_of(request.chunks)

        if request.live_search:
            text, citations = await self._search_fn(messages)
            yield AnswerSnapshot(
                text=text or EMPTY_ANSWER,
                sources=sources,
                grounding_sources=citations or None,
                done=True,
            )
            return

        text = ""
        async with aclosing(self._stream_fn(messages)) as parts:
            async for text in parts:
                yield AnswerSnapshot(text=text, sources=sources)
        yield AnswerSnapshot(text=text or EMPTY_ANSWER, sources=sources, done=True)

    async def answer(self, request: AnswerRequest) -> AnswerSnapshot:
        """Single-shot variant of ``stream()``."""
        messages = self.prompt_for(request).as_chat_messages()
        sources = sources_of(request.chunks)
        if request.live_search:
            text, citations = await self._search_fn(messages)
            return AnswerSnapshot(
                text=text or EMPTY_ANSWER,
                sources=sources,
                grounding_sources=citations or None,
                done=True,
            )
        text = await self._complete_fn(messages)
        return AnswerSnapshot(text=text or EMPTY_ANSWER, sources=sources, done=True)

    # ------------------------------------------------------------------
    # Default provider calls
    # ------------------------------------------------------------------

    def _default_stream(self, messages: list[dict]) -> AsyncIterator[str]:
        cfg = self._config
        return llm_client.stream_chat(
            model=cfg.model,
            messages=messages,
            max_tokens=cfg.max_tokens,
            temperature=cfg.temperature,
            timeout=cfg.timeout,
        )

    async def _default_complete(self, messages: list[dict]) -> str:
        cfg = self._config
        return await llm_client.complete(
            model=cfg.model,
            messages=messages,
            max_tokens=cfg.max_tokens,
            temperature=cfg.temperature,
            timeout=cfg.timeout,
        )

    async def _default_search(
        self, messages: list[dict]
    ) -> tuple[str, list[GroundingSource]]:
        cfg = self._config
        return await llm_client.web_search(
            model=cfg.web_search_model,
            messages=messages,
            context_size=cfg.web_search_context_size,
            max_tokens=cfg.max_tokens,
            timeout=cfg.timeout,
        )
