"""Order-preserving batched embedding under a concurrency cap."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

import numpy as np

from ragsync.embedding.client import EmbeddingBackend

logger = logging.getLogger(__name__)


class EmbeddingBatcher:
    """Embed many texts in fixed-size batches.

    Output is aligned with input by index. A failed batch yields ``None`` for
    each of its items; other batches are unaffected.
    """

    def __init__(
        self,
        backend: EmbeddingBackend,
        *,
        concurrency_limit: int = 5,
        batch_size: int = 10,
        semaphore: asyncio.Semaphore | None = None,
    ) -> None:
        if concurrency_limit <= 0:
            raise ValueError("concurrency_limit must be > 0")
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self.backend = backend
        self.concurrency_limit = concurrency_limit
        self.batch_size = batch_size
        self._semaphore = semaphore

    async def embed_many(self, texts: Sequence[str]) -> List[Optional[np.ndarray]]:
        items = list(texts)
        if not items:
            return []

        results: List[Optional[np.ndarray]] = [None] * len(items)
        semaphore = self._semaphore or asyncio.Semaphore(self.concurrency_limit)

        async def run_batch(start: int) -> None:
            batch = items[start : start + self.batch_size]
            async with semaphore:
                try:
                    vectors = await self.backend.embed(batch)
                except Exception as exc:
                    logger.error(
                        "Embedding batch %d-%d failed: %s", start, start + len(batch) - 1, exc
                    )
                    return
            if len(vectors) != len(batch):
                logger.error(
                    "Embedding batch %d returned %d vectors for %d texts",
                    start,
                    len(vectors),
                    len(batch),
                )
                return
            for offset, vector in enumerate(vectors):
                if vector is None or len(vector) == 0:
                    continue
                results[start + offset] = vector

        await asyncio.gather(
            *(run_batch(start) for start in range(0, len(items), self.batch_size))
        )

        missing = sum(1 for vector in results if vector is None)
        if missing:
            logger.warning("%d of %d embeddings failed", missing, len(items))
        return results
