"""Text extraction for the supported document formats.

PDFs are read with PyMuPDF (fitz) page by page, Word documents with
python-docx, Markdown and plain text are read as UTF-8.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import fitz  # PyMuPDF
from docx import Document as DocxDocument

from ragsync.utils.text import normalize_whitespace

LOGGER = logging.getLogger(__name__)


def iter_pdf_pages(path: Path) -> Iterator[str]:
    """Yield the normalized text of each non-empty PDF page."""
    doc = fitz.open(path)
    try:
        for index in range(len(doc)):
            text = doc[index].get_text() or ""
            normalized = normalize_whitespace(text.splitlines())
            if normalized:
                yield normalized
            else:
                LOGGER.debug("Page %s of %s has no text", index, path)
    finally:
        doc.close()


def extract_docx(path: Path) -> str:
    document = DocxDocument(str(path))
    return "\n".join(p.text for p in document.paragraphs if p.text)


def extract_text(path: Path) -> str:
    """Return the full text of a supported file.

    Multi-part documents are joined with a newline, so the fingerprint of a
    PDF covers all of its pages. Extraction errors propagate to the caller.
    """
    suffix = path.suffix.lower()
    if suffix == ".pdf":
        return "\n".join(iter_pdf_pages(path))
    if suffix == ".docx":
        return extract_docx(path)
    return path.read_text(encoding="utf-8", errors="replace")
