"""Command line interface for ragsync."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from ragsync.config import AppConfig
from ragsync.embedding.client import create_client, create_embedding_backend
from ragsync.errors import ConfigError, StoreError, ValidationError
from ragsync.index.indexer import SyncOrchestrator, SyncReport
from ragsync.index.search import DEFAULT_LIMIT, QueryRouter, SearchResult
from ragsync.index.storage import QdrantStore

console = Console()
app = typer.Typer(help="ragsync - keep per-client Qdrant collections in sync with document folders")
search_app = typer.Typer(help="Semantic search over catalog entries and chunks")
app.add_typer(search_app, name="search")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _load_config(verbose: bool = False) -> AppConfig:
    try:
        config = AppConfig.from_env()
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    _setup_logging(verbose or config.debug)
    return config


async def _run_sync(
    config: AppConfig,
    client: str,
    filesdir: Path,
    *,
    overwrite: bool,
    validate_only: bool,
) -> SyncReport:
    http = create_client(config)
    store = QdrantStore(config)
    try:
        embedder = create_embedding_backend(config, http)
        orchestrator = SyncOrchestrator(config, store, embedder, http)
        return await orchestrator.sync(
            client, filesdir, overwrite=overwrite, validate_only=validate_only
        )
    finally:
        await http.aclose()
        await store.close()


async def _run_search(
    config: AppConfig,
    kind: str,
    query: str,
    *,
    client: str | None = None,
    source: str | None = None,
    limit: int = DEFAULT_LIMIT,
) -> List[SearchResult]:
    http = create_client(config)
    store = QdrantStore(config)
    try:
        router = QueryRouter(config, store, create_embedding_backend(config, http))
        if kind == "catalog":
            return await router.search_catalog(query, client, limit)
        if kind == "chunks":
            return await router.search_chunks(query, client, source, limit)
        return await router.search_all_chunks(query, limit)
    finally:
        await http.aclose()
        await store.close()


async def _run_info(config: AppConfig) -> dict:
    http = create_client(config)
    store = QdrantStore(config)
    try:
        return await QueryRouter(config, store, http).collection_info()
    finally:
        await http.aclose()
        await store.close()


@app.command()
def sync(
    client: str = typer.Option(..., "--client", help="Client (tenant) name"),
    filesdir: Path = typer.Option(
        ..., "--filesdir", help="Path to documents directory", resolve_path=True
    ),
    overwrite: bool = typer.Option(False, "--overwrite", help="Reprocess unchanged files"),
    validate_only: bool = typer.Option(
        False, "--validate-only", help="Only analyze changes, don't write"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Synchronize a client's collections with a documents directory."""
    config = _load_config(verbose)

    if client not in config.tenants:
        console.print(f"[red]Invalid client:[/red] {client}")
        console.print(f"Valid clients: {', '.join(config.tenants)}")
        raise typer.Exit(code=1)
    if not filesdir.is_dir():
        console.print(f"[red]Directory not found:[/red] {filesdir}")
        raise typer.Exit(code=1)

    console.print(f"Client: [bold]{client}[/bold]  Files: [bold]{filesdir}[/bold]")
    console.print(
        f"Overwrite: {overwrite}  Validate only: {validate_only}  "
        f"Concurrency: {config.concurrency}  Batch size: {config.batch_size}"
    )

    try:
        report = asyncio.run(
            _run_sync(
                config, client, filesdir, overwrite=overwrite, validate_only=validate_only
            )
        )
    except (StoreError, ValidationError) as exc:
        console.print(f"[red]Sync failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    if report.validate_only:
        console.print(
            f"Validation complete: {report.added + report.updated} documents ready for processing"
        )
    console.print(
        f"Added: {report.added}, updated: {report.updated}, skipped: {report.skipped}, "
        f"deleted: {report.deleted}, failed: {report.failed}"
    )
    for path, reason in report.failures.items():
        console.print(f"[yellow]{path}[/yellow]: {reason}")


def _print_results(results: List[SearchResult]) -> None:
    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Collection")
    table.add_column("Source")
    table.add_column("Chunk")
    table.add_column("Snippet")

    for result in results:
        snippet = (result.content or "").replace("\n", " ")
        chunk = ""
        if result.type == "chunk":
            chunk = f"{result.metadata.get('chunk_index')}/{result.metadata.get('chunk_total')}"
        table.add_row(
            f"{result.score:.4f}",
            str(result.metadata.get("collection", "")),
            result.source,
            chunk,
            snippet[:180],
        )
    console.print(table)


def _search(kind: str, query: str, verbose: bool, **kwargs) -> None:
    config = _load_config(verbose)
    try:
        results = asyncio.run(_run_search(config, kind, query, **kwargs))
    except ValidationError as exc:
        raise typer.BadParameter(exc.message, param_hint=exc.field) from exc
    _print_results(results)


@search_app.command("catalog")
def search_catalog(
    query: str = typer.Argument(..., help="Query text"),
    client: Optional[str] = typer.Option(None, "--client", help="Restrict to one client"),
    limit: int = typer.Option(DEFAULT_LIMIT, help="Maximum number of results (1-100)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Search document summaries."""
    _search("catalog", query, verbose, client=client, limit=limit)


@search_app.command("chunks")
def search_chunks(
    query: str = typer.Argument(..., help="Query text"),
    client: Optional[str] = typer.Option(None, "--client", help="Restrict to one client"),
    source: Optional[str] = typer.Option(None, "--source", help="Restrict to one source file"),
    limit: int = typer.Option(DEFAULT_LIMIT, help="Maximum number of results (1-100)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Search document chunks."""
    _search("chunks", query, verbose, client=client, source=source, limit=limit)


@search_app.command("all")
def search_all(
    query: str = typer.Argument(..., help="Query text"),
    limit: int = typer.Option(DEFAULT_LIMIT, help="Maximum number of results (1-100)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Search chunks across every client."""
    _search("all", query, verbose, limit=limit)


@app.command()
def info() -> None:
    """Show configured clients and collection point counts."""
    config = _load_config()
    details = asyncio.run(_run_info(config))

    console.print(f"Clients: {', '.join(details['available_clients'])}")
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Collection")
    table.add_column("Type")
    table.add_column("Client")
    table.add_column("Points")
    for collection in details["collections"]:
        count = collection["points_count"]
        table.add_row(
            collection["name"],
            collection["type"],
            collection["client"],
            "-" if count is None else str(count),
        )
    console.print(table)
    if details["status"] != "ok":
        console.print(f"[red]Status: {details['status']}[/red] {details['error']}")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
) -> None:
    """Start the HTTP query service."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    _load_config()
    from ragsync.web.app import app as web_app

    console.print(f"Starting query service on http://{host}:{port}")
    uvicorn.run(web_app, host=host, port=port, reload=False, log_level="info")
