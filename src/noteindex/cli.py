"""Command line interface for noteindex."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import Progress
from rich.table import Table

from noteindex.config import AppConfig, load_config
from noteindex.embedding.encoder import EmbeddingClient
from noteindex.errors import ConfigurationError
from noteindex.index.indexer import BatchReindexer, BatchStats, IndexingPipeline
from noteindex.index.search import SimilaritySearchEngine
from noteindex.index.stats import StatsAggregator
from noteindex.index.storage import SQLiteIndexRepository
from noteindex.utils.files import iter_note_paths

LOGGER = logging.getLogger(__name__)

console = Console()
app = typer.Typer(help="noteindex - local semantic search for notes")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _load_app_config(config_path: Path | None, db: Path | None) -> tuple[AppConfig, Path]:
    try:
        config = load_config(config_path)
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if db is not None:
        config.db_path = db
    return config, config.resolve_db_path(Path.cwd())


def _open_existing(resolved_db: Path) -> SQLiteIndexRepository:
    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")
    return SQLiteIndexRepository(resolved_db)


async def _index_notes(pipeline: IndexingPipeline, paths: List[Path]) -> BatchStats:
    stats = BatchStats(total=len(paths))
    for path in paths:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.error("Failed to read %s: %s", path, exc)
            stats.increment("failed", str(path))
            continue

        LOGGER.info("Processing: %s", path)
        result = await pipeline.embed_document(str(path), content)
        if result.up_to_date:
            stats.increment("skipped", str(path))
        elif result.success:
            stats.increment("success", str(path))
        else:
            LOGGER.warning("%s: %s", path, result.message)
            stats.increment("failed", str(path))
    return stats


@app.command()
def index(
    inputs: List[Path] = typer.Argument(
        ..., help="Note files or folders to index.", resolve_path=True
    ),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    config_path: Path = typer.Option(None, "--config", help="Settings JSON file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index Markdown and text notes found under the given paths."""
    _setup_logging(verbose)
    config, resolved_db = _load_app_config(config_path, db)

    note_paths = list(iter_note_paths(inputs))
    if not note_paths:
        console.print("[yellow]No notes found.[/yellow]")
        return

    _ensure_db_parent(resolved_db)
    repository = SQLiteIndexRepository(resolved_db)
    pipeline = IndexingPipeline(config, EmbeddingClient(), repository)

    console.print(f"Indexing into [bold]{resolved_db}[/bold]...")
    try:
        stats = asyncio.run(_index_notes(pipeline, note_paths))
    finally:
        repository.close()
    console.print(
        f"Embedded: {stats.success}, unchanged: {stats.skipped}, failed: {stats.failed}"
    )


@app.command()
def reindex(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    config_path: Path = typer.Option(None, "--config", help="Settings JSON file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Re-embed every stored note not yet indexed with the current model."""
    _setup_logging(verbose)
    config, resolved_db = _load_app_config(config_path, db)
    repository = _open_existing(resolved_db)
    reindexer = BatchReindexer(IndexingPipeline(config, EmbeddingClient(), repository))

    try:
        with Progress(console=console) as progress:
            task = progress.add_task("Embedding", total=None)

            def on_progress(current: int, total: int, file_path: str) -> None:
                progress.update(task, completed=current, total=total, description=file_path)

            stats = asyncio.run(reindexer.embed_all_documents(on_progress))
    finally:
        repository.close()
    console.print(
        f"Success: {stats.success}, failed: {stats.failed}, "
        f"skipped: {stats.skipped}, total: {stats.total}"
    )


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    config_path: Path = typer.Option(None, "--config", help="Settings JSON file"),
    max_results: Optional[int] = typer.Option(None, help="Number of results to display"),
    threshold: Optional[float] = typer.Option(None, help="Minimum cosine similarity"),
    model_config: Optional[str] = typer.Option(None, help="Embedding config id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Execute a semantic search."""
    _setup_logging(verbose)
    config, resolved_db = _load_app_config(config_path, db)
    repository = _open_existing(resolved_db)
    engine = SimilaritySearchEngine(config, EmbeddingClient(), repository)

    try:
        results = asyncio.run(
            engine.search_documents(
                query,
                max_results=max_results if max_results is not None else config.max_results,
                similarity_threshold=(
                    threshold if threshold is not None else config.similarity_threshold
                ),
                embedding_config_id=model_config,
            )
        )
    finally:
        repository.close()

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Similarity")
    table.add_column("Note")
    table.add_column("Chunk")
    table.add_column("Snippet")

    for result in results:
        snippet = result.content.replace("\n", " ")
        table.add_row(
            f"{result.similarity:.4f}", result.file_path, str(result.chunk_id), snippet[:180]
        )

    console.print(table)


@app.command()
def stats(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    config_path: Path = typer.Option(None, "--config", help="Settings JSON file"),
) -> None:
    """Show document, chunk and embedding counts."""
    _, resolved_db = _load_app_config(config_path, db)
    repository = _open_existing(resolved_db)
    try:
        rag_stats = StatsAggregator(repository).get_rag_stats()
    finally:
        repository.close()

    table = Table(show_header=False)
    table.add_row("Documents", str(rag_stats.total_documents))
    table.add_row("Embedded", str(rag_stats.embedded_documents))
    table.add_row("Pending", str(rag_stats.pending_documents))
    table.add_row("Failed", str(rag_stats.failed_documents))
    table.add_row("Chunks", str(rag_stats.total_chunks))
    table.add_row("Embeddings", str(rag_stats.total_embeddings))
    console.print(table)


@app.command()
def documents(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    config_path: Path = typer.Option(None, "--config", help="Settings JSON file"),
) -> None:
    """List indexed notes and their embedding status."""
    _, resolved_db = _load_app_config(config_path, db)
    repository = _open_existing(resolved_db)
    try:
        rows = repository.get_all_documents()
    finally:
        repository.close()

    if not rows:
        console.print("[yellow]No documents indexed.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Note")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Model")
    for document in rows:
        table.add_row(
            document.file_path,
            document.title,
            document.embedding_status.value,
            document.embedding_model,
        )
    console.print(table)


@app.command()
def remove(
    file_path: str = typer.Argument(..., help="Indexed note path to remove"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    config_path: Path = typer.Option(None, "--config", help="Settings JSON file"),
) -> None:
    """Remove a note and its embeddings from the index."""
    config, resolved_db = _load_app_config(config_path, db)
    repository = _open_existing(resolved_db)
    try:
        removed = IndexingPipeline(config, EmbeddingClient(), repository).remove_document(file_path)
    finally:
        repository.close()

    if removed:
        console.print(f"Removed {file_path}.")
    else:
        console.print(f"[yellow]{file_path} is not indexed.[/yellow]")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    config_path: Path = typer.Option(None, "--config", help="Settings JSON file"),
) -> None:
    """Start the JSON API."""
    import uvicorn

    from noteindex.web.app import app as web_app

    if config_path is not None:
        os.environ["NOTEINDEX_CONFIG"] = str(config_path)
    if db is not None:
        os.environ["NOTEINDEX_DB"] = str(db)

    _, resolved_db = _load_app_config(config_path, db)
    if not resolved_db.exists():
        console.print("[yellow]Warning: database not found, searches will be empty.[/yellow]")

    console.print(f"Starting API on http://{host}:{port} (database: {resolved_db})")
    uvicorn.run(web_app, host=host, port=port, reload=False, log_level="info")
