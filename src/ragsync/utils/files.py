"""Utility helpers for working with source files."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterable, Iterator

SUPPORTED_EXTENSIONS = frozenset({".pdf", ".md", ".txt", ".docx"})
IGNORED_NAMES = frozenset({".DS_Store", "Thumbs.db"})


def is_supported(path: Path) -> bool:
    if path.name in IGNORED_NAMES or path.name.startswith("."):
        return False
    return path.suffix.lower() in SUPPORTED_EXTENSIONS


def iter_source_paths(inputs: Iterable[Path]) -> Iterator[Path]:
    """Yield supported document paths, descending into directories."""
    for item in inputs:
        if item.is_dir():
            yield from iter_source_paths(
                sorted(
                    child
                    for child in item.rglob("*")
                    if child.is_file()
                    and not any(part.startswith(".") for part in child.relative_to(item).parts)
                )
            )
        elif item.is_file() and is_supported(item):
            yield item


def compute_text_sha256(text: str) -> str:
    """Fingerprint of a document's concatenated text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
