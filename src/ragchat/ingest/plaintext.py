"""Plain text chunker — fixed window with overlap."""

from __future__ import annotations

from ragchat.ingest.base import BaseChunker


class PlainTextChunker(BaseChunker):
    """Split text into fixed-size windows with overlap.

    Default: 1000 characters / 200 overlap. A 3000-character text yields
    windows starting at 0, 800, 1600 and 2400.
    """

    def __init__(self, window: int = 1000, overlap: int = 200) -> None:
        if window < 1:
            raise ValueError("window must be >= 1")
        if not 0 <= overlap < window:
            raise ValueError("overlap must be in [0, window)")
        self.window = window
        self.overlap = overlap

    def chunk(self, text: str) -> list[str]:
        return self._split_fixed_window(text, self.window, self.overlap)
