"""Tests for CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from ragsync.cli import _setup_logging, app
from ragsync.errors import StoreError, ValidationError
from ragsync.index.indexer import SyncReport
from ragsync.index.search import SearchResult

runner = CliRunner()


@pytest.fixture(autouse=True)
def env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("QDRANT_URL", ":memory:")
    monkeypatch.setenv("CLIENT_COLLECTIONS", "acme,globex")
    monkeypatch.delenv("DEBUG", raising=False)


class TestSetupLogging:
    """Tests for _setup_logging helper."""

    def test_setup_logging_verbose(self) -> None:
        """Verbose mode sets DEBUG level."""
        with patch("ragsync.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        """Normal mode sets INFO level."""
        with patch("ragsync.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.INFO


class TestConfiguration:
    """Tests for configuration loading."""

    def test_missing_qdrant_url(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Exits with an error when QDRANT_URL is not set."""
        monkeypatch.delenv("QDRANT_URL")
        result = runner.invoke(app, ["sync", "--client", "acme", "--filesdir", str(tmp_path)])
        assert result.exit_code == 1
        assert "Configuration error" in result.stdout


class TestSyncCommand:
    """Tests for the sync command."""

    def test_invalid_client(self, tmp_path: Path) -> None:
        """Lists valid clients when the client is unknown."""
        result = runner.invoke(app, ["sync", "--client", "initech", "--filesdir", str(tmp_path)])
        assert result.exit_code == 1
        assert "Invalid client" in result.stdout
        assert "acme, globex" in result.stdout

    def test_missing_directory(self, tmp_path: Path) -> None:
        """Fails when the documents directory does not exist."""
        missing = tmp_path / "missing"
        result = runner.invoke(app, ["sync", "--client", "acme", "--filesdir", str(missing)])
        assert result.exit_code == 1
        assert "Directory not found" in result.stdout

    @patch("ragsync.cli._run_sync", new_callable=AsyncMock)
    def test_sync_success(self, mock_run: AsyncMock, tmp_path: Path) -> None:
        """Prints the per-category counts."""
        mock_run.return_value = SyncReport(added=2, updated=1, skipped=3, deleted=1)

        result = runner.invoke(
            app, ["sync", "--client", "acme", "--filesdir", str(tmp_path), "--overwrite"]
        )

        assert result.exit_code == 0
        assert "Added: 2, updated: 1, skipped: 3, deleted: 1, failed: 0" in result.stdout
        assert mock_run.await_args.args[1] == "acme"
        assert mock_run.await_args.kwargs == {"overwrite": True, "validate_only": False}

    @patch("ragsync.cli._run_sync", new_callable=AsyncMock)
    def test_validate_only(self, mock_run: AsyncMock, tmp_path: Path) -> None:
        """Reports how many documents would be processed."""
        mock_run.return_value = SyncReport(added=2, updated=1, validate_only=True)

        result = runner.invoke(
            app, ["sync", "--client", "acme", "--filesdir", str(tmp_path), "--validate-only"]
        )

        assert result.exit_code == 0
        assert "Validation complete: 3 documents ready for processing" in result.stdout

    @patch("ragsync.cli._run_sync", new_callable=AsyncMock)
    def test_failures_listed(self, mock_run: AsyncMock, tmp_path: Path) -> None:
        """Prints each failed path with its reason."""
        report = SyncReport()
        report.fail("broken.pdf", "extraction failed")
        mock_run.return_value = report

        result = runner.invoke(app, ["sync", "--client", "acme", "--filesdir", str(tmp_path)])

        assert result.exit_code == 0
        assert "failed: 1" in result.stdout
        assert "broken.pdf" in result.stdout

    @patch("ragsync.cli._run_sync", new_callable=AsyncMock)
    def test_store_unreachable(self, mock_run: AsyncMock, tmp_path: Path) -> None:
        """Exits non-zero when the store cannot be reached."""
        mock_run.side_effect = StoreError("Failed to connect to Qdrant")

        result = runner.invoke(app, ["sync", "--client", "acme", "--filesdir", str(tmp_path)])

        assert result.exit_code == 1
        assert "Sync failed" in result.stdout


class TestSearchCommands:
    """Tests for the search sub-commands."""

    @patch("ragsync.cli._run_search", new_callable=AsyncMock)
    def test_no_results(self, mock_run: AsyncMock) -> None:
        """Shows message when no results found."""
        mock_run.return_value = []

        result = runner.invoke(app, ["search", "catalog", "test query"])

        assert result.exit_code == 0
        assert "No matches found" in result.stdout
        assert mock_run.await_args.args[1:] == ("catalog", "test query")

    @patch("ragsync.cli._run_search", new_callable=AsyncMock)
    def test_chunks_with_results(self, mock_run: AsyncMock) -> None:
        """Displays results in a table."""
        mock_run.return_value = [
            SearchResult(
                type="chunk",
                score=0.9,
                source="a.md",
                content="snippet",
                metadata={"collection": "acme_chunks", "chunk_index": 0, "chunk_total": 2},
            )
        ]

        result = runner.invoke(
            app, ["search", "chunks", "plans", "--client", "acme", "--source", "a.md", "--limit", "5"]
        )

        assert result.exit_code == 0
        assert "0.9000" in result.stdout
        assert "a.md" in result.stdout
        assert mock_run.await_args.kwargs == {"client": "acme", "source": "a.md", "limit": 5}

    @patch("ragsync.cli._run_search", new_callable=AsyncMock)
    def test_all_clients(self, mock_run: AsyncMock) -> None:
        """Searches across clients with only a limit."""
        mock_run.return_value = []

        result = runner.invoke(app, ["search", "all", "plans"])

        assert result.exit_code == 0
        assert mock_run.await_args.args[1] == "all"
        assert mock_run.await_args.kwargs == {"limit": 10}

    @patch("ragsync.cli._run_search", new_callable=AsyncMock)
    def test_validation_error(self, mock_run: AsyncMock) -> None:
        """Invalid arguments become a usage error."""
        mock_run.side_effect = ValidationError("limit", "Limit must be between 1 and 100")

        result = runner.invoke(app, ["search", "catalog", "plans", "--limit", "500"])

        assert result.exit_code == 2


class TestInfoCommand:
    """Tests for the info command."""

    @patch("ragsync.cli._run_info", new_callable=AsyncMock)
    def test_info(self, mock_run: AsyncMock) -> None:
        """Lists collections with their point counts."""
        mock_run.return_value = {
            "total_collections": 1,
            "available_clients": ["acme", "globex"],
            "collections": [
                {
                    "name": "acme_chunks",
                    "type": "chunks",
                    "client": "acme",
                    "description": "Document chunks for acme",
                    "points_count": 12,
                },
                {
                    "name": "globex_chunks",
                    "type": "chunks",
                    "client": "globex",
                    "description": "Document chunks for globex",
                    "points_count": None,
                },
            ],
            "status": "ok",
            "error": None,
        }

        result = runner.invoke(app, ["info"])

        assert result.exit_code == 0
        assert "Clients: acme, globex" in result.stdout
        assert "acme_chunks" in result.stdout
        assert "12" in result.stdout
