"""Tests for change detection."""

from __future__ import annotations

import asyncio
from typing import Dict, Optional, Set

import pytest

from ragsync.index.changes import ChangeDetector, classify
from ragsync.models import ActionType, Document


def _doc(path: str, fingerprint: str) -> Document:
    return Document(path=path, fingerprint=fingerprint, raw_text=f"text of {path}")


class FakeFingerprints:
    def __init__(self, stored: Dict[str, str]) -> None:
        self.stored = stored
        self.broken_paths: Set[str] = set()
        self.listing_fails = False

    async def get_stored_fingerprint(self, path: str, tenant: str) -> Optional[str]:
        if path in self.broken_paths:
            raise ConnectionError("lookup timed out")
        return self.stored.get(path)

    async def list_stored_paths(self, tenant: str) -> Set[str]:
        if self.listing_fails:
            raise ConnectionError("scroll failed")
        return set(self.stored)


class TestClassify:
    """Test the pure classification step."""

    def test_all_action_types(self) -> None:
        """Should produce ADD, UPDATE, SKIP and DELETE as appropriate."""
        documents = [_doc("new.md", "n"), _doc("changed.md", "c2"), _doc("same.md", "s")]
        stored = {"changed.md": "c1", "same.md": "s", "gone.md": "g"}

        actions = {action.path: action for action in classify(documents, stored)}

        assert actions["new.md"].type is ActionType.ADD
        assert actions["changed.md"].type is ActionType.UPDATE
        assert actions["changed.md"].old_fingerprint == "c1"
        assert actions["same.md"].type is ActionType.SKIP
        assert actions["gone.md"].type is ActionType.DELETE
        assert actions["gone.md"].document is None

    def test_overwrite_forces_update(self) -> None:
        """Unchanged documents should be reprocessed when overwriting."""
        actions = classify([_doc("same.md", "s")], {"same.md": "s"}, overwrite=True)

        assert [action.type for action in actions] == [ActionType.UPDATE]

    def test_keep_prevents_delete(self) -> None:
        """Paths present but unreadable should not be tombstoned."""
        actions = classify([], {"broken.pdf": "x"}, keep=["broken.pdf"])

        assert actions == []

    def test_exactly_one_action_per_path(self) -> None:
        """Every path should be classified once."""
        documents = [_doc("a.md", "1"), _doc("b.md", "2")]
        actions = classify(documents, {"a.md": "1", "c.md": "3"})

        assert sorted(action.path for action in actions) == ["a.md", "b.md", "c.md"]


class TestChangeDetector:
    """Test ChangeDetector.detect against a fingerprint source."""

    @pytest.mark.asyncio
    async def test_detect(self) -> None:
        """Should combine per-path lookups with the stored path listing."""
        store = FakeFingerprints({"a.md": "1", "b.md": "old", "c.md": "3"})
        detector = ChangeDetector(store)

        detection = await detector.detect(
            "acme", [_doc("a.md", "1"), _doc("b.md", "new"), _doc("d.md", "4")]
        )

        counts = detection.counts()
        assert counts[ActionType.SKIP] == 1
        assert counts[ActionType.UPDATE] == 1
        assert counts[ActionType.ADD] == 1
        assert counts[ActionType.DELETE] == 1
        assert [a.path for a in detection.of_type(ActionType.DELETE)] == ["c.md"]
        assert detection.warnings == []

    @pytest.mark.asyncio
    async def test_lookup_failure_reprocesses(self) -> None:
        """A failed lookup should mark the path for processing, not skip it."""
        store = FakeFingerprints({"a.md": "1"})
        store.broken_paths = {"a.md"}

        detection = await ChangeDetector(store).detect("acme", [_doc("a.md", "1")])

        assert [a.type for a in detection.actions] == [ActionType.ADD]
        assert len(detection.warnings) == 1
        assert "a.md" in detection.warnings[0]

    @pytest.mark.asyncio
    async def test_listing_failure_skips_deletions(self) -> None:
        """Without a path listing nothing should be deleted."""
        store = FakeFingerprints({"a.md": "1", "gone.md": "2"})
        store.listing_fails = True

        detection = await ChangeDetector(store).detect("acme", [_doc("a.md", "1")])

        assert detection.of_type(ActionType.DELETE) == []
        assert [a.type for a in detection.actions] == [ActionType.SKIP]
        assert "skipping deletions" in detection.warnings[0]

    @pytest.mark.asyncio
    async def test_keep(self) -> None:
        """Unreadable paths should survive detection."""
        store = FakeFingerprints({"broken.pdf": "x"})

        detection = await ChangeDetector(store).detect("acme", [], keep=["broken.pdf"])

        assert detection.actions == []

    @pytest.mark.asyncio
    async def test_lookups_run_concurrently(self) -> None:
        """Per-path lookups should overlap, bounded by the semaphore."""

        class SlowFingerprints(FakeFingerprints):
            def __init__(self, stored: Dict[str, str]) -> None:
                super().__init__(stored)
                self.active = 0
                self.peak = 0

            async def get_stored_fingerprint(self, path: str, tenant: str) -> Optional[str]:
                self.active += 1
                self.peak = max(self.peak, self.active)
                await asyncio.sleep(0.01)
                self.active -= 1
                return self.stored.get(path)

        store = SlowFingerprints({f"{i}.md": str(i) for i in range(6)})
        documents = [_doc(f"{i}.md", str(i)) for i in range(6)]

        detection = await ChangeDetector(store).detect(
            "acme", documents, semaphore=asyncio.Semaphore(3)
        )

        assert detection.counts()[ActionType.SKIP] == 6
        assert store.peak == 3
