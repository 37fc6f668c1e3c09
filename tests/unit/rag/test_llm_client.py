"""Tests for the LiteLLM client wrapper."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ragchat.errors import CapabilityUnavailableError, ProviderError
from ragchat.rag.llm_client import (
    complete,
    embed,
    provider_of,
    stream_chat,
    validate_api_key,
    web_search,
)


@pytest.fixture(autouse=True)
def _keys(monkeypatch):
    for var in ("GEMINI_API_KEY", "GROQ_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.setenv(var, "test-key")


# ------------------------------------------------------------------
# validate_api_key / provider_of
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    "model,provider",
    [("gemini/text-embedding-004", "gemini"), ("groq/llama-3.3-70b-versatile", "groq"), ("gpt-4o", "openai")],
)
def test_provider_of(model, provider):
    assert provider_of(model) == provider


def test_validate_api_key_raises_if_missing(monkeypatch):
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    with pytest.raises(CapabilityUnavailableError, match="GROQ_API_KEY") as info:
        validate_api_key("groq/llama-3.3-70b-versatile")
    assert info.value.provider == "groq"
    assert info.value.capability == "chat"


def test_validate_api_key_is_environment_error(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError):
        validate_api_key("gemini/text-embedding-004", "embedding")


def test_validate_api_key_ollama_no_key_required():
    validate_api_key("ollama/llama3")


# ------------------------------------------------------------------
# embed()
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_embed_returns_vector_and_sets_task_type():
    response = MagicMock()
    response.data = [{"embedding": [0.1, 0.2]}]
    with patch("ragchat.rag.llm_client.litellm.aembedding", new=AsyncMock(return_value=response)) as m:
        vector = await embed("gemini/text-embedding-004", "hello", is_query=True)

    assert vector == [0.1, 0.2]
    assert m.await_args.kwargs["task_type"] == "RETRIEVAL_QUERY"
    assert m.await_args.kwargs["input"] == ["hello"]


@pytest.mark.asyncio
async def test_embed_openai_has_no_task_type():
    response = MagicMock()
    response.data = [{"embedding": [1.0]}]
    with patch("ragchat.rag.llm_client.litellm.aembedding", new=AsyncMock(return_value=response)) as m:
        await embed("openai/text-embedding-3-small", "hello")
    assert "task_type" not in m.await_args.kwargs


@pytest.mark.asyncio
async def test_embed_missing_key_makes_no_call(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    with patch("ragchat.rag.llm_client.litellm.aembedding", new=AsyncMock()) as m:
        with pytest.raises(CapabilityUnavailableError):
            await embed("gemini/text-embedding-004", "hello")
    m.assert_not_awaited()


@pytest.mark.asyncio
async def test_embed_provider_failure_wrapped():
    with patch(
        "ragchat.rag.llm_client.litellm.aembedding",
        new=AsyncMock(side_effect=RuntimeError("429 rate limited")),
    ):
        with pytest.raises(ProviderError, match="rate limited"):
            await embed("gemini/text-embedding-004", "hello")


@pytest.mark.asyncio
async def test_embed_empty_vector_is_provider_error():
    response = MagicMock()
    response.data = [{"embedding": []}]
    with patch("ragchat.rag.llm_client.litellm.aembedding", new=AsyncMock(return_value=response)):
        with pytest.raises(ProviderError):
            await embed("gemini/text-embedding-004", "hello")


# ------------------------------------------------------------------
# complete()
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_complete_returns_content():
    response = MagicMock()
    response.choices[0].message.content = "Hello, world!"
    with patch("ragchat.rag.llm_client.litellm.acompletion", new=AsyncMock(return_value=response)):
        result = await complete("groq/llama-3.3-70b-versatile", [{"role": "user", "content": "hi"}])
    assert result == "Hello, world!"


@pytest.mark.asyncio
async def test_complete_failure_names_capability():
    with patch(
        "ragchat.rag.llm_client.litellm.acompletion",
        new=AsyncMock(side_effect=RuntimeError("timeout")),
    ):
        with pytest.raises(ProviderError, match="rerank failed: timeout"):
            await complete("gemini/gemini-2.0-flash", [], capability="rerank")


# ------------------------------------------------------------------
# stream_chat()
# ------------------------------------------------------------------


def _part(text):
    part = MagicMock()
    part.choices[0].delta.content = text
    return part


class _FakeProviderStream:
    def __init__(self, parts, error: Exception | None = None) -> None:
        self._parts = list(parts)
        self._error = error
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._parts:
            return self._parts.pop(0)
        if self._error is not None:
            raise self._error
        raise StopAsyncIteration

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
async def test_stream_chat_yields_cumulative_text():
    provider = _FakeProviderStream([_part("Hel"), _part(None), _part("lo")])
    with patch("ragchat.rag.llm_client.litellm.acompletion", new=AsyncMock(return_value=provider)):
        texts = [t async for t in stream_chat("groq/llama-3.3-70b-versatile", [])]

    assert texts == ["Hel", "Hello"]
    assert provider.closed


@pytest.mark.asyncio
async def test_stream_chat_mid_stream_error_wrapped_and_closed():
    provider = _FakeProviderStream([_part("Hi")], error=RuntimeError("reset"))
    with patch("ragchat.rag.llm_client.litellm.acompletion", new=AsyncMock(return_value=provider)):
        seen = []
        with pytest.raises(ProviderError, match="reset"):
            async for t in stream_chat("groq/llama-3.3-70b-versatile", []):
                seen.append(t)

    assert seen == ["Hi"]
    assert provider.closed


# ------------------------------------------------------------------
# web_search()
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_web_search_parses_and_dedupes_citations():
    message = MagicMock()
    message.content = "Answer with citations."
    message.annotations = [
        {"type": "url_citation", "url_citation": {"url": "https://a.example", "title": "A"}},
        {"type": "url_citation", "url_citation": {"url": "https://a.example", "title": "A again"}},
        {"type": "url_citation", "url_citation": {"url": "https://b.example"}},
        {"type": "other"},
    ]
    response = MagicMock()
    response.choices[0].message = message

    with patch("ragchat.rag.llm_client.litellm.acompletion", new=AsyncMock(return_value=response)) as m:
        text, sources = await web_search("openai/gpt-4o-search-preview", [], context_size="high")

    assert text == "Answer with citations."
    assert [(s.title, s.url) for s in sources] == [
        ("A", "https://a.example"),
        ("Web Source", "https://b.example"),
    ]
    assert m.await_args.kwargs["web_search_options"] == {"search_context_size": "high"}
