"""Shared fixtures: in-memory Qdrant store and deterministic fake backends."""

from __future__ import annotations

import hashlib
import re
from typing import List, Sequence

import numpy as np
import pytest
from qdrant_client import AsyncQdrantClient

from ragsync.config import AppConfig
from ragsync.errors import BackendError
from ragsync.index.storage import QdrantStore

DIMENSION = 16


class HashingEmbedder:
    """Bag-of-words vectors: texts sharing words point the same way."""

    def __init__(self, dimension: int = DIMENSION) -> None:
        self.dimension = dimension
        self.calls: List[List[str]] = []
        self.fail_when = None

    def vector(self, text: str) -> np.ndarray:
        vec = np.full(self.dimension, 0.01, dtype="float32")
        for word in re.findall(r"\w+", text.lower()):
            bucket = int(hashlib.sha256(word.encode("utf-8")).hexdigest()[:8], 16)
            vec[bucket % self.dimension] += 1.0
        return vec

    async def embed(self, texts: Sequence[str]) -> List[np.ndarray]:
        batch = list(texts)
        self.calls.append(batch)
        if self.fail_when is not None and any(self.fail_when(text) for text in batch):
            raise BackendError("embedding backend unavailable")
        return [self.vector(text) for text in batch]


class FakeSummarizer:
    def __init__(self) -> None:
        self.calls: List[str] = []
        self.fail = False

    async def summarize(self, text: str) -> str:
        self.calls.append(text)
        if self.fail:
            raise BackendError("chat backend unavailable")
        return f"Overview: {text[:40]}"


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(
        qdrant_url=":memory:",
        tenants=("acme", "globex"),
        embedding_dim=DIMENSION,
        concurrency=2,
        batch_size=3,
        chunk_size=200,
        chunk_overlap=20,
        request_timeout=10.0,
    )


@pytest.fixture
def store(config: AppConfig) -> QdrantStore:
    return QdrantStore(
        config, client=AsyncQdrantClient(location=":memory:"), retry_delay=0.0
    )


@pytest.fixture
def embedder() -> HashingEmbedder:
    return HashingEmbedder()


@pytest.fixture
def summarizer() -> FakeSummarizer:
    return FakeSummarizer()
