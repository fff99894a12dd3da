"""Local embedding backend built on sentence-transformers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Literal, Sequence

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EmbeddingConfig:
    model_name: str
    batch_size: int = 16
    normalize: bool = True
    backend: Literal["torch", "onnx", "openvino"] = "torch"
    device: str | None = None


def _load_sentence_transformer(config: EmbeddingConfig) -> Any:
    try:
        from sentence_transformers import SentenceTransformer
    except ImportError as exc:
        raise RuntimeError(
            "sentence-transformers is not installed. Install the local extras with "
            "\"python -m pip install '.[local]'\""
        ) from exc

    return SentenceTransformer(
        config.model_name,
        backend=config.backend,
        device=config.device,
    )


class LocalEmbeddingBackend:
    """Thin async wrapper around `SentenceTransformer`.

    Encoding is CPU/GPU bound, so it runs in a worker thread to keep the
    event loop responsive.
    """

    def __init__(self, config: EmbeddingConfig) -> None:
        self.config = config
        self._model = _load_sentence_transformer(config)
        self.dimension = int(self._model.get_sentence_embedding_dimension())
        logger.info(
            "Loaded %s (backend: %s, dimension: %s)",
            config.model_name,
            config.backend,
            self.dimension,
        )

    def _encode(self, sentences: List[str]) -> np.ndarray:
        embeddings = self._model.encode(
            sentences,
            batch_size=self.config.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=self.config.normalize,
        )
        return embeddings.astype("float32", copy=False)

    async def embed(self, texts: Sequence[str]) -> List[np.ndarray]:
        sentences = list(texts)
        if not sentences:
            return []
        matrix = await asyncio.to_thread(self._encode, sentences)
        return [row for row in matrix]

    async def embed_query(self, text: str) -> np.ndarray:
        return (await self.embed([text]))[0]
