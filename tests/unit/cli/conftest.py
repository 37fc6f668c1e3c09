"""CLI test fixtures: isolated config, fake provider calls."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import pytest


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch):
    """No global/project config files and provider keys present by default."""
    monkeypatch.setattr("ragchat.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    monkeypatch.chdir(tmp_path)
    for var in ("RAGCHAT_CHAT_MODEL", "RAGCHAT_EMBEDDING_MODEL", "RAGCHAT_DB"):
        monkeypatch.delenv(var, raising=False)
    for var in ("GEMINI_API_KEY", "GROQ_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.setenv(var, "test-key")


@pytest.fixture
def fake_embed(monkeypatch) -> AsyncMock:
    mock = AsyncMock(return_value=[1.0, 0.0, 0.0])
    monkeypatch.setattr("ragchat.rag.llm_client.embed", mock)
    return mock


@pytest.fixture
def fake_stream(monkeypatch):
    """Replace the streaming chat call; set ``.texts`` / ``.error`` per test."""

    class _Stream:
        texts = ["Roll back", "Roll back with the deploy job."]
        error: Exception | None = None
        calls: list[dict] = []

        async def __call__(self, **kwargs):
            self.calls.append(kwargs)
            for text in self.texts:
                yield text
            if self.error is not None:
                raise self.error

    stream = _Stream()
    stream.calls = []
    monkeypatch.setattr("ragchat.rag.llm_client.stream_chat", stream)
    return stream


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / ".ragchat.db"
