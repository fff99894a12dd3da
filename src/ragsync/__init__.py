"""ragsync - keep per-client Qdrant collections in sync with document folders."""

__version__ = "0.1.0"
