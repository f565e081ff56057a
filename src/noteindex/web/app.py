"""FastAPI application exposing indexing and search over HTTP."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from noteindex.config import AppConfig, load_config
from noteindex.embedding.encoder import EmbeddingClient
from noteindex.errors import ConfigurationError
from noteindex.index.indexer import BatchReindexer, IndexingPipeline
from noteindex.index.search import SimilaritySearchEngine
from noteindex.index.stats import StatsAggregator
from noteindex.index.storage import SQLiteIndexRepository
from noteindex.models import RAGStats

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="noteindex API", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class SearchPayload(BaseModel):
    query: str
    db: Path | None = None
    max_results: int | None = None
    similarity_threshold: float | None = None
    embedding_config_id: str | None = None


class EmbedPayload(BaseModel):
    file_path: str
    content: str
    title: str | None = None
    embedding_config_id: str | None = None
    db: Path | None = None


class EmbedAllPayload(BaseModel):
    db: Path | None = None


class DeleteDocumentRequest(BaseModel):
    file_path: str
    db: Path | None = None


def _load_settings(db: Path | None) -> tuple[AppConfig, Path]:
    config_path = os.environ.get("NOTEINDEX_CONFIG")
    try:
        config = load_config(Path(config_path) if config_path else None)
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    override = db if db is not None else os.environ.get("NOTEINDEX_DB")
    if override:
        config.db_path = Path(override)
    return config, config.resolve_db_path(Path.cwd())


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _open_existing(resolved_db: Path) -> SQLiteIndexRepository:
    if not resolved_db.exists():
        raise HTTPException(
            status_code=404,
            detail=f"Database not found at {resolved_db}. Index some notes first.",
        )
    return SQLiteIndexRepository(resolved_db)


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.post("/search")
async def search_documents(payload: SearchPayload) -> dict[str, Any]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")

    config, resolved_db = _load_settings(payload.db)
    max_results = payload.max_results if payload.max_results is not None else config.max_results
    max_results = max(1, min(max_results, 50))
    threshold = (
        payload.similarity_threshold
        if payload.similarity_threshold is not None
        else config.similarity_threshold
    )

    repository = _open_existing(resolved_db)
    try:
        engine = SimilaritySearchEngine(config, EmbeddingClient(), repository)
        results = await engine.search_documents(
            query,
            max_results=max_results,
            similarity_threshold=threshold,
            embedding_config_id=payload.embedding_config_id,
        )
    finally:
        repository.close()
    return {"results": results}


@app.post("/documents/embed")
async def embed_document(payload: EmbedPayload) -> dict[str, Any]:
    config, resolved_db = _load_settings(payload.db)
    _ensure_db_parent(resolved_db)

    repository = SQLiteIndexRepository(resolved_db)
    try:
        pipeline = IndexingPipeline(config, EmbeddingClient(), repository)
        result = await pipeline.embed_document(
            payload.file_path,
            payload.content,
            payload.title,
            payload.embedding_config_id,
        )
    finally:
        repository.close()
    return {"result": result}


@app.post("/documents/embed-all")
async def embed_all_documents(payload: EmbedAllPayload) -> dict[str, Any]:
    config, resolved_db = _load_settings(payload.db)
    repository = _open_existing(resolved_db)
    try:
        reindexer = BatchReindexer(IndexingPipeline(config, EmbeddingClient(), repository))
        stats = await reindexer.embed_all_documents()
    finally:
        repository.close()

    return {
        "success": stats.success,
        "failed": stats.failed,
        "skipped": stats.skipped,
        "total": stats.total,
    }


@app.get("/documents")
async def list_documents(db: Path | None = None) -> dict[str, Any]:
    """List all indexed notes, without their full content."""
    _, resolved_db = _load_settings(db)
    if not resolved_db.exists():
        return {"documents": []}

    repository = SQLiteIndexRepository(resolved_db)
    try:
        documents = repository.get_all_documents()
    finally:
        repository.close()

    return {
        "documents": [
            {
                "id": document.id,
                "file_path": document.file_path,
                "title": document.title,
                "file_size": document.file_size,
                "last_modified": document.last_modified,
                "embedding_status": document.embedding_status.value,
                "embedding_model": document.embedding_model,
            }
            for document in documents
        ]
    }


@app.post("/documents/delete")
async def delete_document(payload: DeleteDocumentRequest) -> dict[str, Any]:
    config, resolved_db = _load_settings(payload.db)
    repository = _open_existing(resolved_db)
    try:
        pipeline = IndexingPipeline(config, EmbeddingClient(), repository)
        deleted = pipeline.remove_document(payload.file_path)
    finally:
        repository.close()

    if not deleted:
        raise HTTPException(status_code=404, detail="Document not found")
    return {"status": "ok"}


@app.get("/stats")
async def get_stats(db: Path | None = None) -> dict[str, Any]:
    _, resolved_db = _load_settings(db)
    if not resolved_db.exists():
        return {"stats": RAGStats()}

    repository = SQLiteIndexRepository(resolved_db)
    try:
        stats = StatsAggregator(repository).get_rag_stats()
    finally:
        repository.close()
    return {"stats": stats}
