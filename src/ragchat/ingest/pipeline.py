"""Ingestion pipeline: extract → chunk → embed → store → index.

Each chunk is embedded and written on its own, so an embedding failure
part-way through a document keeps the chunks stored before it. The failure
is reported as ``failed to process <file>``; other files in the same batch
are still processed.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from ragchat.config import ChunkersCfg
from ragchat.db.models import Chunk, Document
from ragchat.db.repository import Repository
from ragchat.errors import IngestError
from ragchat.ingest.base import BaseChunker
from ragchat.ingest.extract import detect_source_type, extract_text
from ragchat.ingest.markdown import MarkdownChunker
from ragchat.ingest.plaintext import PlainTextChunker
from ragchat.rag.index import EmbeddingIndex

logger = logging.getLogger(__name__)

EmbedFn = Callable[[str], Awaitable[list[float]]]
ValidateFn = Callable[[], None]


def chunker_for(source_type: str, cfg: ChunkersCfg | None = None) -> BaseChunker:
    """Markdown gets the structure-aware chunker; everything else the fixed window."""
    cfg = cfg or ChunkersCfg()
    if source_type == "markdown":
        return MarkdownChunker(max_size=cfg.structured.max_size)
    return PlainTextChunker(window=cfg.fixed.window, overlap=cfg.fixed.overlap)


@dataclass
class IngestResult:
    """Outcome of ingesting one document."""

    name: str
    document: Document | None = None
    chunk_count: int = 0
    error: str | None = None
    cause: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def partial(self) -> bool:
        """Failed, but some chunks were stored before the failure."""
        return not self.ok and self.document is not None and self.chunk_count > 0

    @property
    def skipped(self) -> bool:
        return self.ok and self.document is None


class Ingestor:
    """Turns extracted text into stored, indexed chunks.

    Args:
        repo: Open Repository.
        index: In-memory index kept in step with the store.
        embed_document: Coroutine embedding one chunk of document text.
        chunkers: Chunk size configuration.
        check_available: Called before anything is written; raises
            CapabilityUnavailableError when embeddings cannot be produced.
    """

    def __init__(
        self,
        repo: Repository,
        index: EmbeddingIndex,
        embed_document: EmbedFn,
        chunkers: ChunkersCfg | None = None,
        check_available: ValidateFn | None = None,
    ) -> None:
        self._repo = repo
        self._index = index
        self._embed = embed_document
        self._chunkers = chunkers or ChunkersCfg()
        self._check_available = check_available

    async def ingest_text(
        self,
        title: str,
        text: str,
        source_type: str = "text",
        category: str = "General",
        tags: Sequence[str] = (),
    ) -> IngestResult:
        """Chunk, embed and store one document.

        Empty text is a no-op (no document is stored).

        Raises:
            CapabilityUnavailableError: Embeddings are not configured.
            IngestError: A chunk could not be embedded or stored; chunks
                stored before it are kept.
        """
        pieces = chunker_for(source_type, self._chunkers).chunk(text)
        if not pieces:
            logger.info("Nothing to index in %s (empty text)", title)
            return IngestResult(name=title)

        if self._check_available is not None:
            self._check_available()

        doc = Document(
            id=str(uuid.uuid4()),
            title=title,
            raw_text=text,
            source_type=source_type,
            category=category,
            tags=list(tags),
        )
        self._repo.add_document(doc)

        stored = 0
        for i, piece in enumerate(pieces):
            try:
                embedding = await self._embed(piece)
                chunk = Chunk(
                    id=f"{doc.id}-chunk-{i}",
                    document_id=doc.id,
                    document_title=doc.title,
                    chunk_index=i,
                    text=piece,
                    embedding=embedding,
                )
                self._repo.add_chunk(chunk)
            except Exception as exc:
                logger.warning(
                    "Ingest of %s stopped at chunk %d/%d: %s", title, i + 1, len(pieces), exc
                )
                raise IngestError(
                    title, str(exc), document_id=doc.id, stored=stored
                ) from exc
            self._index.add([chunk])
            stored += 1

        return IngestResult(name=title, document=doc, chunk_count=stored)

    async def ingest_file(
        self,
        path: Path | str,
        category: str = "General",
        tags: Sequence[str] = (),
    ) -> IngestResult:
        """Extract and ingest one file.

        Raises:
            CapabilityUnavailableError: Embeddings are not configured.
            IngestError: Extraction, embedding or storage failed.
        """
        p = Path(path)
        source_type = detect_source_type(p)
        try:
            text = extract_text(p)
        except Exception as exc:
            raise IngestError(p.name, str(exc)) from exc
        return await self.ingest_text(
            p.name, text, source_type=source_type, category=category, tags=tags
        )

    async def ingest_files(
        self,
        paths: Sequence[Path | str],
        category: str = "General",
        tags: Sequence[str] = (),
    ) -> list[IngestResult]:
        """Ingest several files; a failure is recorded per file and does not stop the batch.

        A failed result keeps the partially stored document (if any) and
        its chunk count so callers can offer to remove it.
        """
        results: list[IngestResult] = []
        for path in paths:
            try:
                results.append(await self.ingest_file(path, category=category, tags=tags))
            except IngestError as exc:
                document = (
                    self._repo.get_document(exc.document_id) if exc.document_id else None
                )
                results.append(
                    IngestResult(
                        name=exc.name,
                        document=document,
                        chunk_count=exc.stored,
                        error=str(exc),
                        cause=exc,
                    )
                )
            except EnvironmentError as exc:
                name = Path(path).name
                results.append(
                    IngestResult(
                        name=name, error=f"failed to process {name}: {exc}", cause=exc
                    )
                )
        return results

    def delete_document(self, document_id: str) -> int:
        """Remove a document and its chunks from store and index. Returns chunks deleted."""
        deleted = self._repo.delete_document(document_id)
        self._index.remove_document(document_id)
        return deleted

    def wipe(self) -> int:
        """Remove every document. Returns the number of documents deleted."""
        count = self._repo.delete_all_documents()
        self._index.clear()
        return count
