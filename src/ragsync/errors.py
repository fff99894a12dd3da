"""Exception types shared across ragsync."""

from __future__ import annotations


class RagSyncError(Exception):
    """Base class for ragsync errors."""


class ConfigError(RagSyncError):
    """Invalid or missing configuration. Fatal at startup."""


class ValidationError(RagSyncError):
    """A query or request argument was rejected at the boundary."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class BackendError(RagSyncError):
    """Embedding or summarization backend call failed."""


class StoreError(RagSyncError):
    """The vector store could not be reached."""
