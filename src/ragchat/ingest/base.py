"""Base chunker interface for all document shapes."""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    A chunker turns a document's extracted text into an ordered list of
    retrieval units. Sizes are measured in characters. Chunking is pure and
    deterministic: no embedding or network access happens here.

    Subclasses implement ``chunk()`` and may use ``_split_fixed_window()``
    for the sliding-window path.
    """

    @abstractmethod
    def chunk(self, text: str) -> list[str]:
        """Split *text* into ordered chunk strings.

        Returns an empty list for empty or whitespace-only text.
        """

    @staticmethod
    def _split_fixed_window(text: str, window: int, overlap: int) -> list[str]:
        """Slide a *window*-sized slice over *text*, stepping ``window - overlap``.

        Slices keep their exact offsets (no stripping) so consecutive chunks
        share exactly *overlap* characters. Stops once a window reaches the
        end of the text.
        """
        if not text.strip():
            return []

        step = max(1, window - overlap)
        segments: list[str] = []
        pos = 0
        length = len(text)

        while pos < length:
            end = min(pos + window, length)
            segments.append(text[pos:end])
            if end >= length:
                break
            pos += step

        return segments
