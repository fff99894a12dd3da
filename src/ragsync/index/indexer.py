"""Tenant synchronization pipeline: scan, detect, build, embed, write."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

import numpy as np

from ragsync.config import AppConfig
from ragsync.embedding.batcher import EmbeddingBatcher
from ragsync.embedding.client import SUMMARY_FAILED, EmbeddingBackend, Summarizer
from ragsync.errors import ValidationError
from ragsync.index.changes import ChangeDetector
from ragsync.index.storage import QdrantStore
from ragsync.ingestion.loader import extract_text
from ragsync.models import (
    ActionType,
    CatalogEntry,
    ChunkRecord,
    Document,
    FileAction,
    ProcessedDocument,
)
from ragsync.utils.files import compute_text_sha256, iter_source_paths
from ragsync.utils.text import chunk_text

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SyncReport:
    added: int = 0
    updated: int = 0
    skipped: int = 0
    deleted: int = 0
    failed: int = 0
    validate_only: bool = False
    processed_files: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    def increment(self, status: str, path: str) -> None:
        if status == "added":
            self.added += 1
        elif status == "updated":
            self.updated += 1
        elif status == "skipped":
            self.skipped += 1
        elif status == "deleted":
            self.deleted += 1
        else:
            self.failed += 1
        self.processed_files.append(path)

    def fail(self, path: str, reason: str) -> None:
        self.failures[path] = reason
        self.increment("failed", path)

    def as_dict(self) -> dict:
        return {
            "added": self.added,
            "updated": self.updated,
            "skipped": self.skipped,
            "deleted": self.deleted,
            "failed": self.failed,
            "validate_only": self.validate_only,
            "failures": dict(self.failures),
            "warnings": list(self.warnings),
        }


def document_key(path: Path, root: Path) -> str:
    """Stable identity of a file: its POSIX path relative to the sync root."""
    return path.relative_to(root).as_posix()


class SyncOrchestrator:
    """Keeps one tenant's collections in step with a source directory."""

    def __init__(
        self,
        config: AppConfig,
        store: QdrantStore,
        embedder: EmbeddingBackend,
        summarizer: Summarizer,
        *,
        extractor: Callable[[Path], str] = extract_text,
    ) -> None:
        self.config = config
        self.store = store
        self.embedder = embedder
        self.summarizer = summarizer
        self.extractor = extractor
        self.batcher = EmbeddingBatcher(
            embedder,
            concurrency_limit=config.concurrency,
            batch_size=config.batch_size,
        )
        self.detector = ChangeDetector(store, concurrency_limit=config.concurrency)

    async def sync(
        self,
        tenant: str,
        root: Path,
        *,
        overwrite: bool = False,
        validate_only: bool = False,
    ) -> SyncReport:
        """Synchronize ``tenant`` with the documents found under ``root``."""
        if tenant not in self.config.tenants:
            raise ValidationError(
                "client",
                f"Unknown client {tenant!r}. Must be one of: {', '.join(self.config.tenants)}",
            )
        root = Path(root)
        if not root.is_dir():
            raise ValidationError("filesdir", f"Directory not found: {root}")
        root = root.resolve()

        report = SyncReport(validate_only=validate_only)
        semaphore = asyncio.Semaphore(self.config.concurrency)

        if validate_only:
            await self.store.connect()
        else:
            await self.store.initialize()

        documents, unreadable = await self._load_documents(root, report, semaphore)
        if not documents and not unreadable:
            LOGGER.warning("No documents found under %s", root)

        detection = await self.detector.detect(
            tenant, documents, overwrite=overwrite, keep=unreadable, semaphore=semaphore
        )
        report.warnings.extend(detection.warnings)
        for action in detection.of_type(ActionType.SKIP):
            report.increment("skipped", action.path)

        pending = detection.of_type(ActionType.ADD, ActionType.UPDATE)
        deletions = detection.of_type(ActionType.DELETE)

        if validate_only:
            report.added = len(detection.of_type(ActionType.ADD))
            report.updated = len(detection.of_type(ActionType.UPDATE))
            report.deleted = len(deletions)
            LOGGER.info("Validation complete: %d documents ready for processing", len(pending))
            return report

        await asyncio.gather(
            *(self._delete(action, tenant, report, semaphore) for action in deletions)
        )

        if pending:
            processed = await asyncio.gather(
                *(self._build(action, semaphore) for action in pending)
            )
            catalog_vectors, chunk_vectors = await self._embed(processed)
            await asyncio.gather(
                *(
                    self._write(
                        doc,
                        catalog_vectors.get(doc.path),
                        chunk_vectors[doc.path],
                        tenant,
                        report,
                        semaphore,
                    )
                    for doc in processed
                )
            )

        LOGGER.info(
            "Sync of %s complete: added=%d updated=%d skipped=%d deleted=%d failed=%d",
            tenant,
            report.added,
            report.updated,
            report.skipped,
            report.deleted,
            report.failed,
        )
        return report

    async def _load_documents(
        self, root: Path, report: SyncReport, semaphore: asyncio.Semaphore
    ) -> tuple[List[Document], List[str]]:
        paths = list(iter_source_paths([root]))
        LOGGER.info("Loading %d documents from %s", len(paths), root)

        async def load(path: Path) -> Optional[Document]:
            key = document_key(path, root)
            async with semaphore:
                try:
                    text = await asyncio.wait_for(
                        asyncio.to_thread(self.extractor, path),
                        timeout=self.config.request_timeout,
                    )
                except Exception as exc:
                    LOGGER.error("Failed to extract %s: %s", key, exc)
                    report.fail(key, f"extraction failed: {exc}")
                    return None
            if not text or not text.strip():
                # Still classified, so a previously stored version gets purged
                LOGGER.warning("No text extracted from %s", key)
                text = ""
            return Document(path=key, fingerprint=compute_text_sha256(text), raw_text=text)

        loaded = await asyncio.gather(*(load(path) for path in paths))
        documents = [doc for doc in loaded if doc is not None]
        unreadable = [document_key(path, root) for path, doc in zip(paths, loaded) if doc is None]
        return documents, unreadable

    async def _delete(
        self, action: FileAction, tenant: str, report: SyncReport, semaphore: asyncio.Semaphore
    ) -> None:
        async with semaphore:
            try:
                await self.store.delete_by_path(action.path, tenant)
            except Exception as exc:
                LOGGER.error("Failed to delete %s: %s", action.path, exc)
                report.fail(action.path, f"delete failed: {exc}")
                return
        LOGGER.info("Deleted: %s", action.path)
        report.increment("deleted", action.path)

    async def _summarize(self, text: str, semaphore: asyncio.Semaphore) -> str:
        async with semaphore:
            try:
                return await asyncio.wait_for(
                    self.summarizer.summarize(text), timeout=self.config.request_timeout
                )
            except Exception as exc:
                LOGGER.error("Summary generation failed: %s", exc)
                return SUMMARY_FAILED

    async def _build(self, action: FileAction, semaphore: asyncio.Semaphore) -> ProcessedDocument:
        document = action.document
        if document is None:
            raise ValueError(f"{action.type.value} action for {action.path} has no document")

        catalog = None
        if document.raw_text and len(document.raw_text) > self.config.summary_min_chars:
            overview = await self._summarize(document.raw_text, semaphore)
            catalog = CatalogEntry(
                path=document.path,
                fingerprint=document.fingerprint,
                raw_text=document.raw_text,
                overview=overview,
            )

        texts = chunk_text(
            document.raw_text,
            max_chars=self.config.chunk_size,
            overlap=self.config.chunk_overlap,
        )
        chunks = [
            ChunkRecord(
                path=document.path,
                fingerprint=document.fingerprint,
                raw_text=document.raw_text,
                chunk_index=index,
                chunk_total=len(texts),
                chunk_text=text,
            )
            for index, text in enumerate(texts)
        ]
        return ProcessedDocument(action=action, catalog=catalog, chunks=chunks)

    async def _embed(
        self, processed: List[ProcessedDocument]
    ) -> tuple[Dict[str, Optional[np.ndarray]], Dict[str, List[Optional[np.ndarray]]]]:
        LOGGER.info("Generating embeddings for %d documents", len(processed))
        with_catalog = [doc for doc in processed if doc.catalog is not None]
        overview_vectors = await self.batcher.embed_many(
            [doc.catalog.overview for doc in with_catalog]  # type: ignore[union-attr]
        )
        catalog_vectors = {
            doc.path: vector for doc, vector in zip(with_catalog, overview_vectors)
        }

        flat = await self.batcher.embed_many(
            [chunk.chunk_text for doc in processed for chunk in doc.chunks]
        )
        chunk_vectors: Dict[str, List[Optional[np.ndarray]]] = {}
        cursor = 0
        for doc in processed:
            chunk_vectors[doc.path] = flat[cursor : cursor + len(doc.chunks)]
            cursor += len(doc.chunks)
        return catalog_vectors, chunk_vectors

    async def _write(
        self,
        doc: ProcessedDocument,
        catalog_vector: Optional[np.ndarray],
        chunk_vectors: List[Optional[np.ndarray]],
        tenant: str,
        report: SyncReport,
        semaphore: asyncio.Semaphore,
    ) -> None:
        is_update = doc.action.type is ActionType.UPDATE
        if not doc.chunks:
            await self._clear(doc, tenant, report, semaphore)
            return

        missing = sum(1 for vector in chunk_vectors if vector is None)
        if (doc.catalog is not None and catalog_vector is None) or missing:
            # Nothing is written, so the stale or absent record makes the next run retry
            LOGGER.error("Embeddings incomplete for %s, leaving it for the next sync", doc.path)
            report.fail(doc.path, f"embedding failed for {missing} of {len(doc.chunks)} chunks")
            return

        async with semaphore:
            try:
                # ADD also purges: a degraded lookup may hide records from an older version
                await self.store.delete_by_path(doc.path, tenant)
                if is_update:
                    LOGGER.debug("Cleaned old version: %s", doc.path)
                await self.store.upsert_chunks(doc.chunks, chunk_vectors, tenant)  # type: ignore[arg-type]
                if doc.catalog is not None:
                    await self.store.upsert_catalog(doc.catalog, catalog_vector, tenant)  # type: ignore[arg-type]
            except Exception as exc:
                LOGGER.error("Failed to store %s: %s", doc.path, exc)
                report.fail(doc.path, f"write failed: {exc}")
                await self._rollback(doc.path, tenant)
                return

        LOGGER.debug("Stored %s (%d chunks)", doc.path, len(doc.chunks))
        report.increment("updated" if is_update else "added", doc.path)

    async def _clear(
        self,
        doc: ProcessedDocument,
        tenant: str,
        report: SyncReport,
        semaphore: asyncio.Semaphore,
    ) -> None:
        """Drop every stored record of a document that no longer has text."""
        async with semaphore:
            try:
                await self.store.delete_by_path(doc.path, tenant)
            except Exception as exc:
                LOGGER.error("Failed to purge %s: %s", doc.path, exc)
                report.fail(doc.path, f"purge failed: {exc}")
                return
        if doc.action.type is ActionType.UPDATE:
            LOGGER.info("Purged %s: no text content", doc.path)
        report.fail(doc.path, "no text content")

    async def _rollback(self, path: str, tenant: str) -> None:
        try:
            await self.store.delete_by_path(path, tenant)
        except Exception as exc:
            LOGGER.error("Rollback of %s failed: %s", path, exc)
