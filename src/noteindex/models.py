"""Core noteindex data models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EmbeddingStatus(str, Enum):
    """Indexing state of a document."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class Document:
    """One indexed note, keyed by its file path."""

    file_path: str
    title: str
    content: str
    content_hash: str
    file_size: int
    last_modified: int
    embedding_status: EmbeddingStatus = EmbeddingStatus.PENDING
    embedding_model: str = ""
    id: int | None = None
    generation: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(slots=True)
class ChunkData:
    """Chunker output before it is attached to a document."""

    content: str
    start_position: int
    end_position: int
    token_count: int


@dataclass(slots=True)
class Chunk:
    """Persisted slice of a document's text."""

    document_id: int
    chunk_index: int
    content: str
    start_position: int
    end_position: int
    token_count: int
    generation: str | None = None
    id: int | None = None


@dataclass(slots=True)
class Embedding:
    """Vector for one chunk, scoped to one model."""

    chunk_id: int
    embedding: str
    embedding_model: str
    id: int | None = None


@dataclass(slots=True)
class StoredEmbedding:
    """Embedding row joined with its chunk and document for ranking."""

    chunk_id: int
    document_id: int
    file_path: str
    content: str
    embedding: str
    embedding_model: str


@dataclass(slots=True)
class SearchResult:
    file_path: str
    content: str
    similarity: float
    document_id: int
    chunk_id: int


@dataclass(slots=True)
class EmbeddingResult:
    """Outcome of indexing a single document."""

    success: bool
    message: str
    document_id: int | None = None
    chunks_count: int | None = None
    embeddings_count: int | None = None
    up_to_date: bool = False


@dataclass(slots=True)
class RAGStats:
    total_documents: int = 0
    embedded_documents: int = 0
    pending_documents: int = 0
    failed_documents: int = 0
    total_chunks: int = 0
    total_embeddings: int = 0
