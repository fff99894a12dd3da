"""HTTP client for an OpenAI-compatible embedding and chat backend (LM Studio)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Protocol, Sequence

import httpx
import numpy as np

from ragsync.errors import BackendError

if TYPE_CHECKING:
    from ragsync.config import AppConfig

logger = logging.getLogger(__name__)

SUMMARY_FAILED = "Summary generation failed - using fallback"
SUMMARY_PROMPT = """Write a one sentence content overview based on the text below. If the text is empty or contains no meaningful content, respond with "Empty file - no content to summarize".

Text:
"{content}"

CONTENT OVERVIEW (one sentence only):"""
SUMMARY_INPUT_CHARS = 4000


class EmbeddingBackend(Protocol):
    async def embed(self, texts: Sequence[str]) -> List[np.ndarray]: ...


class Summarizer(Protocol):
    async def summarize(self, text: str) -> str: ...


class LMStudioClient:
    """Embeds text and writes one-sentence overviews over HTTP.

    A single ``httpx.AsyncClient`` is shared by all calls. Connection
    failures are retried by the transport; any other failure surfaces as
    :class:`BackendError` for the caller to degrade.
    """

    def __init__(
        self,
        *,
        base_url: str,
        embedding_model: str,
        llm_model: str,
        timeout_seconds: float = 60.0,
        connect_retries: int = 2,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.embedding_model = embedding_model
        self.llm_model = llm_model
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            transport=httpx.AsyncHTTPTransport(retries=connect_retries),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def embed(self, texts: Sequence[str]) -> List[np.ndarray]:
        """Return float32 embeddings aligned with ``texts``."""
        inputs = list(texts)
        if not inputs:
            return []

        try:
            response = await self._client.post(
                "/v1/embeddings",
                json={"model": self.embedding_model, "input": inputs},
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise BackendError(f"Embedding request failed: {exc}") from exc

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise BackendError("Invalid embeddings payload: missing data")

        # OpenAI-style responses may carry an explicit index per item
        if all(isinstance(item, dict) and "index" in item for item in data):
            data = sorted(data, key=lambda item: item["index"])

        vectors: List[np.ndarray] = []
        for item in data:
            embedding = item.get("embedding") if isinstance(item, dict) else None
            if not isinstance(embedding, list) or not embedding:
                raise BackendError("Invalid embeddings payload: missing embedding vector")
            vectors.append(np.asarray(embedding, dtype="float32"))

        if len(vectors) != len(inputs):
            raise BackendError(
                f"Invalid embeddings payload: expected {len(inputs)} vectors, got {len(vectors)}"
            )
        return vectors

    async def embed_query(self, text: str) -> np.ndarray:
        return (await self.embed([text]))[0]

    async def summarize(self, text: str) -> str:
        """Ask the chat model for a one-sentence overview of ``text``."""
        prompt = SUMMARY_PROMPT.format(content=text[:SUMMARY_INPUT_CHARS])
        logger.debug("Generating summary for %s...", text[:50])
        try:
            response = await self._client.post(
                "/v1/chat/completions",
                json={
                    "model": self.llm_model,
                    "messages": [{"role": "user", "content": prompt}],
                    "temperature": 0.1,
                    "max_tokens": 200,
                },
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise BackendError(f"Summary request failed: {exc}") from exc

        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise BackendError(f"Invalid chat completion payload: {payload!r}") from exc
        if not isinstance(content, str) or not content.strip():
            raise BackendError("Chat completion returned no content")
        return content.strip()


def create_embedding_backend(config: AppConfig, http_client: LMStudioClient) -> EmbeddingBackend:
    """Pick the embedding backend named by ``config.embedding_backend``."""
    if config.embedding_backend == "local":
        from ragsync.embedding.encoder import EmbeddingConfig, LocalEmbeddingBackend

        return LocalEmbeddingBackend(EmbeddingConfig(model_name=config.embedding_model))
    return http_client


def create_client(config: AppConfig) -> LMStudioClient:
    return LMStudioClient(
        base_url=config.lm_studio_url,
        embedding_model=config.embedding_model,
        llm_model=config.llm_model,
        timeout_seconds=config.request_timeout,
    )
