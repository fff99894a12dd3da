"""Classification of scanned paths against stored fingerprints."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Protocol, Set

from ragsync.models import ActionType, Document, FileAction

LOGGER = logging.getLogger(__name__)


class FingerprintSource(Protocol):
    async def get_stored_fingerprint(self, path: str, tenant: str) -> Optional[str]: ...

    async def list_stored_paths(self, tenant: str) -> Set[str]: ...


def classify(
    documents: Iterable[Document],
    stored: Mapping[str, str],
    *,
    overwrite: bool = False,
    keep: Iterable[str] = (),
) -> List[FileAction]:
    """Return one action per path found on disk or in the store.

    ``keep`` names paths that exist on disk but could not be read; they are
    neither processed nor tombstoned.
    """
    actions: List[FileAction] = []
    seen = set(keep)
    for document in documents:
        seen.add(document.path)
        previous = stored.get(document.path)
        if previous is None:
            actions.append(FileAction(ActionType.ADD, document.path, document))
        elif previous != document.fingerprint or overwrite:
            actions.append(
                FileAction(ActionType.UPDATE, document.path, document, old_fingerprint=previous)
            )
        else:
            actions.append(FileAction(ActionType.SKIP, document.path))

    for path in stored:
        if path not in seen:
            actions.append(FileAction(ActionType.DELETE, path))
    return actions


@dataclass(slots=True)
class Detection:
    actions: List[FileAction]
    warnings: List[str] = field(default_factory=list)

    def counts(self) -> Counter:
        return Counter(action.type for action in self.actions)

    def of_type(self, *types: ActionType) -> List[FileAction]:
        return [action for action in self.actions if action.type in types]


class ChangeDetector:
    """Looks up stored fingerprints per path and classifies each one."""

    def __init__(self, store: FingerprintSource, *, concurrency_limit: int = 5) -> None:
        self.store = store
        self.concurrency_limit = concurrency_limit

    async def detect(
        self,
        tenant: str,
        documents: Iterable[Document],
        *,
        overwrite: bool = False,
        keep: Iterable[str] = (),
        semaphore: asyncio.Semaphore | None = None,
    ) -> Detection:
        documents = list(documents)
        warnings: List[str] = []
        stored: dict[str, str] = {}
        semaphore = semaphore or asyncio.Semaphore(self.concurrency_limit)

        async def lookup(document: Document) -> None:
            async with semaphore:
                try:
                    fingerprint = await self.store.get_stored_fingerprint(document.path, tenant)
                except Exception as exc:
                    message = f"Lookup failed for {document.path}, reprocessing: {exc}"
                    LOGGER.warning(message)
                    warnings.append(message)
                    return
            if fingerprint is not None:
                stored[document.path] = fingerprint

        await asyncio.gather(*(lookup(document) for document in documents))

        try:
            stored_paths = await self.store.list_stored_paths(tenant)
        except Exception as exc:
            message = f"Could not list stored paths, skipping deletions: {exc}"
            LOGGER.warning(message)
            warnings.append(message)
            stored_paths = set()

        scanned = {document.path for document in documents}
        for path in stored_paths - scanned:
            # Only absence from the scan matters for tombstones
            stored[path] = ""

        actions = classify(documents, stored, overwrite=overwrite, keep=keep)
        detection = Detection(actions, warnings)
        for action in actions:
            LOGGER.debug("%s: %s", action.type.value, action.path)
        LOGGER.info(
            "File analysis: %s",
            ", ".join(f"{kind.value}={count}" for kind, count in sorted(detection.counts().items())),
        )
        return detection
