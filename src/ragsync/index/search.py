"""Semantic search over one tenant or fanned out across all tenants."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional, Sequence

import numpy as np
from qdrant_client import models

from ragsync.config import AppConfig
from ragsync.embedding.client import EmbeddingBackend
from ragsync.errors import ValidationError
from ragsync.index.storage import QdrantStore

LOGGER = logging.getLogger(__name__)

MIN_LIMIT = 1
MAX_LIMIT = 100
DEFAULT_LIMIT = 10


@dataclass(slots=True)
class SearchResult:
    type: Literal["catalog", "chunk"]
    score: float
    source: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _catalog_result(point: models.ScoredPoint, collection: str) -> SearchResult:
    payload = point.payload or {}
    return SearchResult(
        type="catalog",
        score=float(point.score or 0.0),
        source=payload.get("source", ""),
        content=payload.get("overview", ""),
        metadata={"collection": collection, "overview": payload.get("overview", "")},
    )


def _chunk_result(point: models.ScoredPoint, collection: str) -> SearchResult:
    payload = point.payload or {}
    return SearchResult(
        type="chunk",
        score=float(point.score or 0.0),
        source=payload.get("source", ""),
        content=payload.get("chunk_content", ""),
        metadata={
            "collection": collection,
            "chunk_index": payload.get("chunk_index"),
            "chunk_total": payload.get("chunk_total"),
        },
    )


def merge_by_score(groups: Sequence[Sequence[SearchResult]], limit: int) -> List[SearchResult]:
    """Global top-``limit`` over per-tenant candidate lists."""
    merged = [result for group in groups for result in group]
    merged.sort(key=lambda result: result.score, reverse=True)
    return merged[:limit]


class QueryRouter:
    """High-level API to query the tenant collections."""

    def __init__(self, config: AppConfig, store: QdrantStore, embedder: EmbeddingBackend) -> None:
        self.config = config
        self.store = store
        self.embedder = embedder

    # Validation

    @staticmethod
    def validate_query(query: Any) -> str:
        if not isinstance(query, str):
            raise ValidationError("query", "Query must be a string")
        if not query.strip():
            raise ValidationError("query", "Query must not be empty")
        return query.strip()

    @staticmethod
    def validate_limit(limit: Any) -> int:
        if isinstance(limit, bool) or not isinstance(limit, int):
            raise ValidationError("limit", "Limit must be an integer")
        if not MIN_LIMIT <= limit <= MAX_LIMIT:
            raise ValidationError("limit", f"Limit must be between {MIN_LIMIT} and {MAX_LIMIT}")
        return limit

    def validate_tenant(self, tenant: Any) -> Optional[str]:
        if tenant is None:
            return None
        if not isinstance(tenant, str):
            raise ValidationError("client", "Client must be a string")
        if tenant not in self.config.tenants:
            raise ValidationError(
                "client",
                f"Invalid client. Must be one of: {', '.join(self.config.tenants)}",
            )
        return tenant

    @staticmethod
    def validate_source(source: Any) -> Optional[str]:
        if source is None:
            return None
        if not isinstance(source, str) or not source.strip():
            raise ValidationError("source", "Source must be a non-empty string")
        return source

    # Search

    async def _embed_query(self, query: str) -> Optional[np.ndarray]:
        try:
            return (await self.embedder.embed([query]))[0]
        except Exception as exc:
            LOGGER.error("Query embedding failed: %s", exc)
            return None

    async def _search_tenant(
        self,
        tenant: str,
        vector: np.ndarray,
        *,
        kind: Literal["catalog", "chunk"],
        limit: int,
        source: str | None = None,
    ) -> List[SearchResult]:
        if kind == "catalog":
            collection = self.config.catalog_collection(tenant)
            points = await self.store.search(collection, vector, limit=limit)
            return [_catalog_result(point, collection) for point in points]
        collection = self.config.chunks_collection(tenant)
        points = await self.store.search(collection, vector, limit=limit, source=source)
        return [_chunk_result(point, collection) for point in points]

    async def _fan_out(
        self,
        vector: np.ndarray,
        *,
        kind: Literal["catalog", "chunk"],
        limit: int,
        source: str | None = None,
    ) -> List[SearchResult]:
        tenants = self.config.tenants
        per_tenant = math.ceil(limit / len(tenants))
        outcomes = await asyncio.gather(
            *(
                self._search_tenant(tenant, vector, kind=kind, limit=per_tenant, source=source)
                for tenant in tenants
            ),
            return_exceptions=True,
        )
        groups: List[List[SearchResult]] = []
        for tenant, outcome in zip(tenants, outcomes):
            if isinstance(outcome, BaseException):
                LOGGER.warning("Search failed for client %s: %s", tenant, outcome)
                continue
            groups.append(outcome)
        return merge_by_score(groups, limit)

    async def _route(
        self,
        query: Any,
        tenant: Any,
        limit: Any,
        *,
        kind: Literal["catalog", "chunk"],
        source: Any = None,
    ) -> List[SearchResult]:
        query = self.validate_query(query)
        tenant = self.validate_tenant(tenant)
        limit = self.validate_limit(limit)
        source = self.validate_source(source)

        vector = await self._embed_query(query)
        if vector is None:
            return []

        if tenant is None:
            return await self._fan_out(vector, kind=kind, limit=limit, source=source)
        try:
            results = await self._search_tenant(
                tenant, vector, kind=kind, limit=limit, source=source
            )
        except Exception as exc:
            LOGGER.error("Search failed for client %s: %s", tenant, exc)
            return []
        return merge_by_score([results], limit)

    async def search_catalog(
        self, query: str, tenant: str | None = None, limit: int = DEFAULT_LIMIT
    ) -> List[SearchResult]:
        return await self._route(query, tenant, limit, kind="catalog")

    async def search_chunks(
        self,
        query: str,
        tenant: str | None = None,
        source: str | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> List[SearchResult]:
        return await self._route(query, tenant, limit, kind="chunk", source=source)

    async def search_all_chunks(self, query: str, limit: int = DEFAULT_LIMIT) -> List[SearchResult]:
        return await self._route(query, None, limit, kind="chunk")

    # Introspection

    async def collection_info(self) -> Dict[str, Any]:
        """Configured tenants, their collections and point counts."""
        info: Dict[str, Any] = {
            "total_collections": 0,
            "available_clients": list(self.config.tenants),
            "collections": [],
            "status": "ok",
            "error": None,
        }
        try:
            existing = set(await self.store.list_collection_names())
        except Exception as exc:
            LOGGER.error("Failed to list collections: %s", exc)
            info.update(status="failed", error=str(exc))
            return info

        info["total_collections"] = len(existing)
        for tenant in self.config.tenants:
            for kind, name in (
                ("catalog", self.config.catalog_collection(tenant)),
                ("chunks", self.config.chunks_collection(tenant)),
            ):
                points_count = None
                if name in existing:
                    try:
                        points_count = await self.store.count_points(name)
                    except Exception as exc:
                        LOGGER.warning("Failed to read stats for %s: %s", name, exc)
                        info["status"] = "error"
                        info["error"] = str(exc)
                info["collections"].append(
                    {
                        "name": name,
                        "type": kind,
                        "client": tenant,
                        "description": f"Document {'catalog' if kind == 'catalog' else 'chunks'} for {tenant}",
                        "points_count": points_count,
                    }
                )
        return info
