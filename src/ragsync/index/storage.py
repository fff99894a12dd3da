"""Qdrant persistence for per-tenant catalog and chunk collections."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence, Set

import numpy as np
from qdrant_client import AsyncQdrantClient, models

from ragsync.config import MEMORY_LOCATION, AppConfig
from ragsync.errors import StoreError, ValidationError
from ragsync.models import CatalogEntry, ChunkRecord

LOGGER = logging.getLogger(__name__)

POINT_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "ragsync/points")
SCROLL_PAGE_SIZE = 100
INDEXED_FIELDS = ("source", "hash")


def catalog_point_id(path: str) -> str:
    return str(uuid.uuid5(POINT_NAMESPACE, path))


def chunk_point_id(path: str, chunk_index: int) -> str:
    return str(uuid.uuid5(POINT_NAMESPACE, f"{path}-{chunk_index}"))


def source_filter(path: str) -> models.Filter:
    return models.Filter(
        must=[models.FieldCondition(key="source", match=models.MatchValue(value=path))]
    )


def _as_list(vector: np.ndarray | Sequence[float]) -> List[float]:
    return np.asarray(vector, dtype="float32").tolist()


class QdrantStore:
    """Writes and reads the two collections owned by each tenant.

    Catalog and chunk point ids are derived from the source path, so
    re-upserting the same logical record overwrites it.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        client: AsyncQdrantClient | None = None,
        connect_attempts: int = 3,
        retry_delay: float = 2.0,
    ) -> None:
        self.config = config
        self.client = client or self._create_client(config)
        self.connect_attempts = connect_attempts
        self.retry_delay = retry_delay
        self._connected = False

    @staticmethod
    def _create_client(config: AppConfig) -> AsyncQdrantClient:
        if config.qdrant_url == MEMORY_LOCATION:
            return AsyncQdrantClient(location=MEMORY_LOCATION)
        return AsyncQdrantClient(
            url=config.qdrant_url,
            api_key=config.qdrant_api_key,
            timeout=int(config.request_timeout),
        )

    async def close(self) -> None:
        await self.client.close()

    async def connect(self) -> None:
        """Check the store is reachable, retrying with exponential backoff."""
        if self._connected:
            return

        delay = self.retry_delay
        for attempt in range(1, self.connect_attempts + 1):
            try:
                await self.client.get_collections()
            except Exception as exc:
                LOGGER.error("Qdrant connection failed (attempt %d): %s", attempt, exc)
                if attempt == self.connect_attempts:
                    raise StoreError(f"Failed to connect to Qdrant: {exc}") from exc
                await asyncio.sleep(delay)
                delay *= 2
            else:
                self._connected = True
                LOGGER.debug("Connected to Qdrant")
                return

    async def initialize(self) -> None:
        """Create any missing tenant collections."""
        await self.connect()
        existing = set(await self.list_collection_names())
        for name in self.config.collection_names():
            if name in existing:
                await self._ensure_indexes(name)
                continue
            await self.client.create_collection(
                collection_name=name,
                vectors_config=models.VectorParams(
                    size=self.config.embedding_dim,
                    distance=models.Distance.COSINE,
                ),
            )
            await self._ensure_indexes(name)
            LOGGER.info("Created collection %s", name)

    async def _ensure_indexes(self, name: str) -> None:
        for field_name in INDEXED_FIELDS:
            try:
                await self.client.create_payload_index(
                    collection_name=name,
                    field_name=field_name,
                    field_schema=models.PayloadSchemaType.KEYWORD,
                )
            except Exception as exc:
                if "already exists" not in str(exc):
                    LOGGER.warning("Failed to add %s index to %s: %s", field_name, name, exc)

    def _require_tenant(self, tenant: str) -> None:
        if tenant not in self.config.tenants:
            raise ValidationError(
                "client", f"Unknown client {tenant!r}. Must be one of: {', '.join(self.config.tenants)}"
            )

    def catalog_collection(self, tenant: str) -> str:
        self._require_tenant(tenant)
        return self.config.catalog_collection(tenant)

    def chunks_collection(self, tenant: str) -> str:
        self._require_tenant(tenant)
        return self.config.chunks_collection(tenant)

    async def upsert_catalog(
        self, entry: CatalogEntry, vector: np.ndarray | Sequence[float], tenant: str
    ) -> None:
        await self.client.upsert(
            collection_name=self.catalog_collection(tenant),
            points=[
                models.PointStruct(
                    id=catalog_point_id(entry.path),
                    vector=_as_list(vector),
                    payload=entry.payload(),
                )
            ],
            wait=True,
        )

    async def upsert_chunk(
        self, chunk: ChunkRecord, vector: np.ndarray | Sequence[float], tenant: str
    ) -> None:
        await self.upsert_chunks([chunk], [vector], tenant)

    async def upsert_chunks(
        self,
        chunks: Sequence[ChunkRecord],
        vectors: Sequence[np.ndarray | Sequence[float]],
        tenant: str,
    ) -> None:
        if len(chunks) != len(vectors):
            raise ValueError("Embeddings and chunks length mismatch")
        if not chunks:
            return
        await self.client.upsert(
            collection_name=self.chunks_collection(tenant),
            points=[
                models.PointStruct(
                    id=chunk_point_id(chunk.path, chunk.chunk_index),
                    vector=_as_list(vector),
                    payload=chunk.payload(),
                )
                for chunk, vector in zip(chunks, vectors)
            ],
            wait=True,
        )

    async def delete_by_path(self, path: str, tenant: str) -> None:
        """Remove the catalog entry and every chunk stored for ``path``."""
        selector = models.FilterSelector(filter=source_filter(path))
        for collection in (self.catalog_collection(tenant), self.chunks_collection(tenant)):
            await self.client.delete(
                collection_name=collection, points_selector=selector, wait=True
            )
        LOGGER.debug("Purged %s from %s", path, tenant)

    async def _scroll(
        self, collection: str, scroll_filter: models.Filter | None = None, *, limit: int | None = None
    ) -> List[models.Record]:
        records: List[models.Record] = []
        offset: Any = None
        page_size = min(limit, SCROLL_PAGE_SIZE) if limit else SCROLL_PAGE_SIZE
        while True:
            points, offset = await self.client.scroll(
                collection_name=collection,
                scroll_filter=scroll_filter,
                limit=page_size,
                offset=offset,
                with_payload=list(INDEXED_FIELDS),
                with_vectors=False,
            )
            records.extend(points)
            if offset is None or (limit and len(records) >= limit):
                return records

    async def stored_fingerprints(self, tenant: str) -> Dict[str, str]:
        """Map every stored path of ``tenant`` to its fingerprint.

        Both collections are read: short documents have chunks but no
        catalog entry.
        """
        fingerprints: Dict[str, str] = {}
        for collection in (self.chunks_collection(tenant), self.catalog_collection(tenant)):
            for record in await self._scroll(collection):
                payload = record.payload or {}
                source = payload.get("source")
                if source:
                    fingerprints[source] = payload.get("hash", "")
        return fingerprints

    async def list_stored_paths(self, tenant: str) -> Set[str]:
        return set(await self.stored_fingerprints(tenant))

    async def get_stored_fingerprint(self, path: str, tenant: str) -> Optional[str]:
        for collection in (self.catalog_collection(tenant), self.chunks_collection(tenant)):
            records = await self._scroll(collection, source_filter(path), limit=1)
            if records:
                return (records[0].payload or {}).get("hash")
        return None

    async def search(
        self,
        collection: str,
        vector: np.ndarray | Sequence[float],
        *,
        limit: int,
        source: str | None = None,
    ) -> List[models.ScoredPoint]:
        response = await self.client.query_points(
            collection_name=collection,
            query=_as_list(vector),
            limit=limit,
            query_filter=source_filter(source) if source else None,
            with_payload=True,
        )
        return list(response.points)

    async def list_collection_names(self) -> List[str]:
        response = await self.client.get_collections()
        return [collection.name for collection in response.collections]

    async def count_points(self, collection: str) -> int | None:
        info = await self.client.get_collection(collection_name=collection)
        return info.points_count
