"""Text helpers including fixed-size overlapping chunking."""

from __future__ import annotations

from typing import Iterable, List


def chunk_text(text: str, *, max_chars: int = 1000, overlap: int = 80) -> List[str]:
    """Split text into overlapping character chunks.

    Consecutive chunks start ``max_chars - overlap`` characters apart and the
    last chunk ends exactly at the end of the text, so no chunk consists of
    overlap alone. Empty or whitespace-only text yields no chunks.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be > 0")
    if overlap < 0:
        raise ValueError("overlap must be >= 0")
    if overlap >= max_chars:
        raise ValueError("overlap must be smaller than max_chars")

    if not text or not text.strip():
        return []

    chunks: List[str] = []
    step = max_chars - overlap
    start = 0
    while True:
        end = min(len(text), start + max_chars)
        chunks.append(text[start:end])
        if end >= len(text):
            break
        start += step
    return chunks


def normalize_whitespace(lines: Iterable[str]) -> str:
    """Collapse whitespace and join lines."""
    return "\n".join(line.strip() for line in lines if line.strip())
