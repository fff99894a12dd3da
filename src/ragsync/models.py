"""Core ragsync data models."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class Document:
    """A source file as seen on disk during one sync run."""

    path: str
    fingerprint: str
    raw_text: str
    created_at: str = field(default_factory=utc_now)


@dataclass(slots=True)
class CatalogEntry:
    """Document-level summary record."""

    path: str
    fingerprint: str
    raw_text: str
    overview: str
    created_at: str = field(default_factory=utc_now)

    def payload(self) -> Dict[str, Any]:
        return {
            "source": self.path,
            "hash": self.fingerprint,
            "content": self.raw_text,
            "overview": self.overview,
            "created_at": self.created_at,
            "type": "catalog",
        }


@dataclass(slots=True)
class ChunkRecord:
    """Span of document text stored for fine-grained retrieval."""

    path: str
    fingerprint: str
    raw_text: str
    chunk_index: int
    chunk_total: int
    chunk_text: str
    created_at: str = field(default_factory=utc_now)

    def payload(self) -> Dict[str, Any]:
        return {
            "source": self.path,
            "hash": self.fingerprint,
            "content": self.raw_text,
            "chunk_content": self.chunk_text,
            "chunk_index": self.chunk_index,
            "chunk_total": self.chunk_total,
            "created_at": self.created_at,
            "type": "chunk",
        }


class ActionType(str, enum.Enum):
    ADD = "ADD"
    UPDATE = "UPDATE"
    SKIP = "SKIP"
    DELETE = "DELETE"


@dataclass(slots=True)
class FileAction:
    """Classification of one path for the current run."""

    type: ActionType
    path: str
    document: Document | None = None
    old_fingerprint: str | None = None


@dataclass(slots=True)
class ProcessedDocument:
    """Catalog entry and chunks built for an ADD or UPDATE action."""

    action: FileAction
    catalog: CatalogEntry | None
    chunks: List[ChunkRecord]

    @property
    def path(self) -> str:
        return self.action.path
