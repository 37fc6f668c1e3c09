"""Text extraction for uploaded files — plain text, Markdown, code and PDF (pypdf)."""

from __future__ import annotations

from pathlib import Path

import pypdf

_MD_EXTS = {".md", ".markdown"}
_PDF_EXTS = {".pdf"}
_TEXT_EXTS = {".txt", ".rst", ".text", ".csv", ".log"}
_CODE_EXTS = {
    ".py", ".js", ".ts", ".tsx", ".jsx", ".java", ".go", ".rs", ".c", ".h",
    ".cpp", ".hpp", ".rb", ".sh", ".sql", ".json", ".yaml", ".yml", ".toml",
    ".html", ".css",
}
SUPPORTED_EXTENSIONS = _MD_EXTS | _PDF_EXTS | _TEXT_EXTS | _CODE_EXTS


def detect_source_type(path: Path | str) -> str:
    """Infer the document source type from the file extension.

    Returns one of ``markdown``, ``pdf``, ``code``, ``text`` or ``unknown``.
    """
    ext = Path(path).suffix.lower()
    if ext in _MD_EXTS:
        return "markdown"
    if ext in _PDF_EXTS:
        return "pdf"
    if ext in _CODE_EXTS:
        return "code"
    if ext in _TEXT_EXTS:
        return "text"
    return "unknown"


def extract_text(path: Path | str) -> str:
    """Return the plain or Markdown text of the file at *path*.

    Raises:
        ValueError: If the file type is not supported.
        OSError: If the file cannot be read.
    """
    p = Path(path)
    source_type = detect_source_type(p)
    if source_type == "unknown":
        raise ValueError(f"Unsupported file type: {p.suffix!r}")
    if source_type == "pdf":
        return _extract_pdf(p)
    return p.read_text(encoding="utf-8", errors="replace")


def _extract_pdf(path: Path) -> str:
    """Extract all page text from the PDF at *path*; image-only pages are skipped."""
    reader = pypdf.PdfReader(str(path))
    parts: list[str] = []
    for page in reader.pages:
        page_text = page.extract_text() or ""
        stripped = page_text.strip()
        if stripped:
            parts.append(stripped)
    return "\n\n".join(parts)
