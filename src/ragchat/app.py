"""Wiring: open the store, rebuild the index, and build the pipeline from config."""

from __future__ import annotations

import sqlite3
from functools import partial
from pathlib import Path

from ragchat.chat.service import ChatService
from ragchat.chat.session_store import ChatState, SessionStore
from ragchat.config import RagChatConfig
from ragchat.db.connection import Database
from ragchat.db.repository import Repository
from ragchat.db.schema import initialize
from ragchat.ingest.pipeline import Ingestor
from ragchat.rag import llm_client
from ragchat.rag.index import EmbeddingIndex
from ragchat.rag.reranker import Reranker, RerankerConfig
from ragchat.rag.retriever import RetrieverConfig
from ragchat.rag.synthesizer import Synthesizer, SynthesizerConfig


def retriever_config(cfg: RagChatConfig) -> RetrieverConfig:
    r = cfg.retrieval
    return RetrieverConfig(
        vector_weight=r.vector_weight,
        lexical_weight=r.lexical_weight,
        lexical_increment=r.lexical_increment,
        min_score=r.min_score,
        top_k=r.top_k if cfg.rerank.enabled else r.top_k_no_rerank,
        min_word_length=r.min_word_length,
    )


def synthesizer_config(cfg: RagChatConfig) -> SynthesizerConfig:
    return SynthesizerConfig(
        model=cfg.chat.model,
        temperature=cfg.chat.temperature,
        max_tokens=cfg.chat.max_tokens,
        history_turns=cfg.chat.history_turns,
        timeout=cfg.chat.timeout,
        web_search_model=cfg.web_search.model,
        web_search_context_size=cfg.web_search.context_size,
    )


class Assistant:
    """Everything a front end needs, built from one config and one database.

    Use as a context manager, or call ``close()`` when done.
    """

    def __init__(self, cfg: RagChatConfig, db_path: Path | str | None = None) -> None:
        self.cfg = cfg
        self.db_path = db_path if db_path is not None else cfg.storage.db
        self.conn: sqlite3.Connection = Database(self.db_path).connect()
        initialize(self.conn)

        self.repo = Repository(self.conn)
        self.index = EmbeddingIndex.load(self.repo)
        self.sessions = SessionStore(self.repo, title_length=cfg.chat.title_length)

        timeout = cfg.chat.timeout
        embed_model = cfg.embedding.model
        self.ingestor = Ingestor(
            self.repo,
            self.index,
            embed_document=partial(llm_client.embed, embed_model, timeout=timeout),
            chunkers=cfg.chunkers,
            check_available=partial(llm_client.validate_api_key, embed_model, "embedding"),
        )

        reranker = None
        if cfg.rerank.enabled:
            reranker = Reranker(
                RerankerConfig(model=cfg.rerank.model, top_n=cfg.rerank.top_n, timeout=timeout)
            )
        self.chat = ChatService(
            self.repo,
            self.index,
            self.sessions,
            Synthesizer(synthesizer_config(cfg)),
            embed_query=partial(llm_client.embed, embed_model, is_query=True, timeout=timeout),
            retriever_config=retriever_config(cfg),
            reranker=reranker,
        )

    def restore_state(self) -> ChatState:
        return self.sessions.restore_state()

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> Assistant:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
