"""ragchat ingest pipeline — text extraction, chunkers, document ingestion."""

from ragchat.ingest.base import BaseChunker
from ragchat.ingest.markdown import MarkdownChunker
from ragchat.ingest.pipeline import Ingestor, IngestResult, chunker_for
from ragchat.ingest.plaintext import PlainTextChunker

__all__ = [
    "BaseChunker",
    "IngestResult",
    "Ingestor",
    "MarkdownChunker",
    "PlainTextChunker",
    "chunker_for",
]
