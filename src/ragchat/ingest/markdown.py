"""Markdown chunker — heading-aware splits with paragraph packing."""

from __future__ import annotations

import re

from ragchat.ingest.base import BaseChunker

# Matches H1, H2, H3 headings at the start of a line.
_HEADING_RE = re.compile(r"^#{1,3} .+", re.MULTILINE)
_PARAGRAPH_RE = re.compile(r"\n\s*\n")


class MarkdownChunker(BaseChunker):
    """Split Markdown on H1/H2/H3 heading boundaries.

    Strategy:
    - Each heading + its following content is a *section*; content before
      the first heading (preamble) is its own section. A document without
      headings is a single section.
    - Sections within ``max_size`` characters are emitted whole.
    - Larger sections are split on blank-line paragraphs. Paragraphs are
      packed into a buffer that is flushed whenever the next paragraph
      would push it past ``max_size``.
    - A single paragraph larger than ``max_size`` is emitted whole; the cap
      is a soft target, never a truncation.
    """

    def __init__(self, max_size: int = 1500) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size

    def chunk(self, text: str) -> list[str]:
        if not text.strip():
            return []

        chunks: list[str] = []
        for section in self._split_on_headings(text):
            if len(section) <= self.max_size:
                chunks.append(section)
            else:
                chunks.extend(self._pack_paragraphs(section))
        return [c for c in chunks if c.strip()]

    def _split_on_headings(self, content: str) -> list[str]:
        """Split *content* on H1/H2/H3 boundaries (whole text if none)."""
        matches = list(_HEADING_RE.finditer(content))
        if not matches:
            return [content.strip()]

        sections: list[str] = []

        preamble = content[: matches[0].start()].strip()
        if preamble:
            sections.append(preamble)

        for i, match in enumerate(matches):
            end = matches[i + 1].start() if i + 1 < len(matches) else len(content)
            section = content[match.start():end].strip()
            if section:
                sections.append(section)

        return sections

    def _pack_paragraphs(self, section: str) -> list[str]:
        paragraphs = [p.strip() for p in _PARAGRAPH_RE.split(section) if p.strip()]
        packed: list[str] = []
        buffer = ""
        for para in paragraphs:
            candidate = f"{buffer}\n\n{para}" if buffer else para
            if buffer and len(candidate) > self.max_size:
                packed.append(buffer)
                buffer = para
            else:
                buffer = candidate
        if buffer:
            packed.append(buffer)
        return packed
