"""Tests for the answer synthesizer."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from ragchat.db.models import Chunk, GroundingSource
from ragchat.errors import ProviderError
from ragchat.rag.synthesizer import (
    EMPTY_ANSWER,
    AnswerRequest,
    Synthesizer,
    sources_of,
)

pytestmark = pytest.mark.asyncio


def _chunk(title: str) -> Chunk:
    return Chunk(id=title, document_id=title, document_title=title, text=f"about {title}", embedding=[1.0])


class FakeStream:
    """Async iterator over cumulative texts that records whether it was closed."""

    def __init__(self, texts, fail_after: int | None = None) -> None:
        self._texts = list(texts)
        self._fail_after = fail_after
        self._i = 0
        self.closed = False
        self.messages = None

    def __call__(self, messages):
        self.messages = messages
        return self

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        if self._fail_after is not None and self._i >= self._fail_after:
            raise ProviderError("chat", "connection reset")
        if self._i >= len(self._texts):
            raise StopAsyncIteration
        text = self._texts[self._i]
        self._i += 1
        return text

    async def aclose(self) -> None:
        self.closed = True


async def _collect(synth: Synthesizer, request: AnswerRequest):
    return [snap async for snap in synth.stream(request)]


async def test_sources_of_dedupes_in_first_seen_order():
    chunks = [_chunk("B"), _chunk("A"), _chunk("B")]
    assert sources_of(chunks) == ["B", "A"]


async def test_stream_yields_cumulative_snapshots():
    stream = FakeStream(["Hel", "Hello", "Hello!"])
    synth = Synthesizer(stream_fn=stream)

    snaps = await _collect(synth, AnswerRequest(query="hi", chunks=[_chunk("A"), _chunk("A")]))

    assert [s.text for s in snaps] == ["Hel", "Hello", "Hello!", "Hello!"]
    assert [s.done for s in snaps] == [False, False, False, True]
    assert all(s.sources == ["A"] for s in snaps)
    assert stream.closed


async def test_stream_prompt_ends_with_query():
    stream = FakeStream(["ok"])
    await _collect(Synthesizer(stream_fn=stream), AnswerRequest(query="what now?"))
    assert stream.messages[0]["role"] == "system"
    assert stream.messages[-1] == {"role": "user", "content": "what now?"}


async def test_stream_empty_answer_placeholder():
    snaps = await _collect(Synthesizer(stream_fn=FakeStream([])), AnswerRequest(query="hi"))
    assert [s.text for s in snaps] == [EMPTY_ANSWER]
    assert snaps[-1].done


async def test_stream_error_propagates_and_closes_provider_stream():
    stream = FakeStream(["partial"], fail_after=1)
    synth = Synthesizer(stream_fn=stream)

    seen = []
    with pytest.raises(ProviderError, match="connection reset"):
        async for snap in synth.stream(AnswerRequest(query="hi")):
            seen.append(snap.text)

    assert seen == ["partial"]
    assert stream.closed


async def test_stream_consumer_stop_closes_provider_stream():
    stream = FakeStream(["a", "ab", "abc"])
    gen = Synthesizer(stream_fn=stream).stream(AnswerRequest(query="hi"))
    first = await gen.__anext__()
    await gen.aclose()

    assert first.text == "a"
    assert stream.closed


async def test_live_search_single_grounded_snapshot():
    citations = [GroundingSource(title="Python.org", url="https://python.org")]
    search = AsyncMock(return_value=("Python 3.14 is out.", citations))
    stream = FakeStream(["never"])
    synth = Synthesizer(stream_fn=stream, search_fn=search)

    snaps = await _collect(synth, AnswerRequest(query="latest python?", live_search=True))

    assert len(snaps) == 1
    assert snaps[0].done
    assert snaps[0].text == "Python 3.14 is out."
    assert snaps[0].grounding_sources == citations
    search.assert_awaited_once()
    assert stream.messages is None
    assert "WEB SEARCH" in search.await_args.args[0][0]["content"]


async def test_live_search_without_citations():
    search = AsyncMock(return_value=("", []))
    snaps = await _collect(
        Synthesizer(search_fn=search), AnswerRequest(query="q", live_search=True)
    )
    assert snaps[0].text == EMPTY_ANSWER
    assert snaps[0].grounding_sources is None


async def test_answer_single_shot():
    complete = AsyncMock(return_value="Done.")
    result = await Synthesizer(complete_fn=complete).answer(
        AnswerRequest(query="q", chunks=[_chunk("A")])
    )
    assert result.text == "Done."
    assert result.sources == ["A"]
    assert result.done
