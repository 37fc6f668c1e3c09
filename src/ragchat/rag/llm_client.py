"""LiteLLM client wrapper: API key validation, embeddings, completions, streaming.

All provider calls in the ingest/retrieval/answer pipeline route through this
module. Calls are async (litellm.aembedding / litellm.acompletion) and use
LiteLLM's built-in retry. Any provider failure surfaces as ProviderError;
missing credentials surface as CapabilityUnavailableError before any network
call is made.
"""

from __future__ import annotations

import os
from collections.abc import AsyncIterator
from typing import Any

import litellm

from ragchat.db.models import GroundingSource
from ragchat.errors import CapabilityUnavailableError, ProviderError

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]

DEFAULT_TIMEOUT = 60.0


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def provider_of(model: str) -> str:
    """Return the provider prefix of a LiteLLM model string (default 'openai')."""
    return model.split("/")[0].lower() if "/" in model else "openai"


def validate_api_key(model: str, capability: str = "chat") -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.
        capability: Human-readable capability name used in the error message.

    Raises:
        CapabilityUnavailableError: If the required key is missing.
    """
    provider = provider_of(model)
    env_var = _PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")

    if env_var is None:
        return  # No key required (e.g. ollama)

    if not os.getenv(env_var):
        raise CapabilityUnavailableError(capability, provider, env_var)


# ------------------------------------------------------------------
# Embeddings
# ------------------------------------------------------------------


async def embed(
    model: str,
    text: str,
    *,
    is_query: bool = False,
    timeout: float = DEFAULT_TIMEOUT,
    num_retries: int = 3,
) -> list[float]:
    """Call litellm.aembedding() and return the embedding vector.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        text: Text to embed.
        is_query: Embed as a search query rather than a document, for
            providers that distinguish the two.
        timeout: Per-call timeout in seconds.
        num_retries: Number of retries on transient errors.

    Raises:
        CapabilityUnavailableError: If the embedding provider has no API key.
        ProviderError: On API failure or a response without a vector.
    """
    validate_api_key(model, "embedding")

    kwargs: dict[str, Any] = {}
    if provider_of(model) in ("gemini", "vertex_ai"):
        kwargs["task_type"] = "RETRIEVAL_QUERY" if is_query else "RETRIEVAL_DOCUMENT"

    try:
        response = await litellm.aembedding(
            model=model,
            input=[text],
            timeout=timeout,
            num_retries=num_retries,
            **kwargs,
        )
    except Exception as exc:
        raise ProviderError("embedding", str(exc) or type(exc).__name__) from exc

    try:
        vector = response.data[0]["embedding"]
    except (AttributeError, IndexError, KeyError, TypeError) as exc:
        raise ProviderError("embedding", "response contained no embedding") from exc
    if not vector:
        raise ProviderError("embedding", "response contained no vector values")
    return [float(v) for v in vector]


# ------------------------------------------------------------------
# Chat completion
# ------------------------------------------------------------------


async def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 2048,
    temperature: float = 0.0,
    timeout: float = DEFAULT_TIMEOUT,
    num_retries: int = 3,
    capability: str = "chat",
) -> str:
    """Call litellm.acompletion() with retry/backoff. Returns content string.

    Raises:
        CapabilityUnavailableError: If the provider has no API key.
        ProviderError: On persistent API failure after retries.
    """
    validate_api_key(model, capability)
    try:
        response = await litellm.acompletion(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            timeout=timeout,
            num_retries=num_retries,
        )
        return response.choices[0].message.content or ""
    except Exception as exc:
        raise ProviderError(capability, str(exc) or type(exc).__name__) from exc


async def stream_chat(
    model: str,
    messages: list[dict],
    max_tokens: int = 2048,
    temperature: float = 0.0,
    timeout: float = DEFAULT_TIMEOUT,
) -> AsyncIterator[str]:
    """Stream a chat completion, yielding the cumulative text after each delta.

    The provider stream is closed when the generator finishes, fails, or is
    closed by the consumer.

    Raises:
        CapabilityUnavailableError: If the provider has no API key.
        ProviderError: If opening or reading the stream fails.
    """
    validate_api_key(model, "chat")
    try:
        response = await litellm.acompletion(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            timeout=timeout,
            stream=True,
        )
    except Exception as exc:
        raise ProviderError("chat", str(exc) or type(exc).__name__) from exc

    text = ""
    try:
        async for part in response:
            delta = _delta_text(part)
            if delta:
                text += delta
                yield text
    except Exception as exc:
        raise ProviderError("chat", str(exc) or type(exc).__name__) from exc
    finally:
        closer = getattr(response, "aclose", None)
        if closer is not None:
            await closer()


def _delta_text(part: Any) -> str:
    try:
        return part.choices[0].delta.content or ""
    except (AttributeError, IndexError):
        return ""


# ------------------------------------------------------------------
# Web-grounded completion
# ------------------------------------------------------------------


async def web_search(
    model: str,
    messages: list[dict],
    context_size: str = "medium",
    max_tokens: int = 2048,
    timeout: float = DEFAULT_TIMEOUT,
) -> tuple[str, list[GroundingSource]]:
    """Run a search-augmented completion; return (text, citations).

    Uses LiteLLM's ``web_search_options`` and reads ``url_citation``
    annotations from the response message.

    Raises:
        CapabilityUnavailableError: If the provider has no API key.
        ProviderError: On API failure.
    """
    validate_api_key(model, "web search")
    try:
        response = await litellm.acompletion(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            timeout=timeout,
            web_search_options={"search_context_size": context_size},
        )
        message = response.choices[0].message
    except Exception as exc:
        raise ProviderError("web search", str(exc) or type(exc).__name__) from exc

    text = message.content or ""
    citations: list[GroundingSource] = []
    seen: set[str] = set()
    for annotation in getattr(message, "annotations", None) or []:
        if _field(annotation, "type") != "url_citation":
            continue
        citation = _field(annotation, "url_citation") or {}
        url = _field(citation, "url")
        if not url or url in seen:
            continue
        seen.add(url)
        citations.append(
            GroundingSource(title=_field(citation, "title") or "Web Source", url=url)
        )
    return text, citations


def _field(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)
