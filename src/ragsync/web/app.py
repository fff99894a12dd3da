"""FastAPI application exposing the ragsync query and sync surface."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, StrictBool, StrictInt, StrictStr

from ragsync.config import AppConfig
from ragsync.embedding.client import LMStudioClient, create_client, create_embedding_backend
from ragsync.errors import StoreError, ValidationError
from ragsync.index.indexer import SyncOrchestrator
from ragsync.index.search import DEFAULT_LIMIT, QueryRouter
from ragsync.index.storage import QdrantStore

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="ragsync", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class CatalogSearchPayload(BaseModel):
    query: StrictStr
    client: Optional[StrictStr] = None
    limit: StrictInt = DEFAULT_LIMIT


class ChunksSearchPayload(BaseModel):
    query: StrictStr
    client: Optional[StrictStr] = None
    source: Optional[StrictStr] = None
    limit: StrictInt = DEFAULT_LIMIT


class AllChunksSearchPayload(BaseModel):
    query: StrictStr
    limit: StrictInt = DEFAULT_LIMIT


class SyncPayload(BaseModel):
    client: StrictStr
    filesdir: StrictStr
    overwrite: StrictBool = False
    validate_only: StrictBool = False


@dataclass
class Services:
    """Clients shared by every request."""

    config: AppConfig
    http: LMStudioClient
    store: QdrantStore
    router: QueryRouter
    orchestrator: SyncOrchestrator

    @classmethod
    def create(cls, config: AppConfig) -> "Services":
        http = create_client(config)
        store = QdrantStore(config)
        embedder = create_embedding_backend(config, http)
        return cls(
            config=config,
            http=http,
            store=store,
            router=QueryRouter(config, store, embedder),
            orchestrator=SyncOrchestrator(config, store, embedder, http),
        )

    async def close(self) -> None:
        await self.http.aclose()
        await self.store.close()


_services: Services | None = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = Services.create(AppConfig.from_env())
    return _services


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    # Invalid configuration must stop the service before it accepts requests
    get_services()


@app.on_event("shutdown")
async def shutdown_event() -> None:
    global _services
    if _services is not None:
        await _services.close()
        _services = None


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": exc.to_dict()})


@app.post("/catalog_search")
async def catalog_search(
    payload: CatalogSearchPayload, services: Services = Depends(get_services)
) -> dict[str, Any]:
    results = await services.router.search_catalog(payload.query, payload.client, payload.limit)
    return {
        "query": payload.query,
        "client": payload.client or "all",
        "total_results": len(results),
        "results": [result.as_dict() for result in results],
    }


@app.post("/chunks_search")
async def chunks_search(
    payload: ChunksSearchPayload, services: Services = Depends(get_services)
) -> dict[str, Any]:
    results = await services.router.search_chunks(
        payload.query, payload.client, payload.source, payload.limit
    )
    return {
        "query": payload.query,
        "client": payload.client or "all",
        "source": payload.source,
        "total_results": len(results),
        "results": [result.as_dict() for result in results],
    }


@app.post("/all_chunks_search")
async def all_chunks_search(
    payload: AllChunksSearchPayload, services: Services = Depends(get_services)
) -> dict[str, Any]:
    results = await services.router.search_all_chunks(payload.query, payload.limit)
    return {
        "query": payload.query,
        "scope": "all_clients",
        "total_results": len(results),
        "results": [result.as_dict() for result in results],
    }


@app.get("/collection_info")
async def collection_info(services: Services = Depends(get_services)) -> dict[str, Any]:
    return await services.router.collection_info()


@app.post("/sync")
async def run_sync(
    payload: SyncPayload, services: Services = Depends(get_services)
) -> dict[str, Any]:
    try:
        report = await services.orchestrator.sync(
            payload.client,
            Path(payload.filesdir).expanduser(),
            overwrite=payload.overwrite,
            validate_only=payload.validate_only,
        )
    except StoreError as exc:
        LOGGER.error("Sync failed: %s", exc)
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"status": "ok", "client": payload.client, "report": report.as_dict()}
