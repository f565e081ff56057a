"""SQLite persistence for documents, chunks and embeddings.

Chunks are written under a generation token. A document row points at its
active generation and every read joins on that pointer, so a re-index that
is still writing its chunks stays invisible until
:meth:`SQLiteIndexRepository.activate_generation` flips the pointer.
"""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Protocol, Sequence

from noteindex.errors import PersistenceError
from noteindex.models import Chunk, Document, Embedding, EmbeddingStatus, StoredEmbedding


class IndexRepository(Protocol):
    """Operations the indexing pipeline needs from a store."""

    def upsert_document(self, document: Document) -> int: ...

    def get_document(self, file_path: str) -> Document | None: ...

    def get_all_documents(self) -> List[Document]: ...

    def delete_document(self, file_path: str) -> bool: ...

    def begin_generation(self, document_id: int) -> str: ...

    def activate_generation(self, document_id: int, generation: str) -> None: ...

    def discard_generation(self, document_id: int, generation: str) -> None: ...

    def add_chunk(self, chunk: Chunk) -> int: ...

    def get_chunks(self, document_id: int) -> List[Chunk]: ...

    def delete_chunks_for_document(self, document_id: int) -> None: ...

    def add_embedding(self, embedding: Embedding) -> int: ...

    def get_all_embeddings(self, model: str | None = None) -> List[StoredEmbedding]: ...

    def count_embeddings(self) -> int: ...


def _new_generation() -> str:
    return uuid.uuid4().hex


class SQLiteIndexRepository:
    """Persistence layer for notes, their chunks and chunk embeddings."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._conn.execute("PRAGMA foreign_keys=ON;")
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except sqlite3.Error as exc:
            self._conn.rollback()
            raise PersistenceError(str(exc)) from exc
        except Exception:
            self._conn.rollback()
            raise

    def _query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id INTEGER PRIMARY KEY,
                    file_path TEXT NOT NULL UNIQUE,
                    title TEXT,
                    content TEXT NOT NULL,
                    content_hash TEXT NOT NULL,
                    file_size INTEGER NOT NULL,
                    last_modified INTEGER NOT NULL,
                    embedding_status TEXT NOT NULL DEFAULT 'pending'
                        CHECK (embedding_status IN ('pending', 'processing', 'completed', 'failed')),
                    embedding_model TEXT,
                    generation TEXT,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS documents_updated
                AFTER UPDATE ON documents
                BEGIN
                    UPDATE documents SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
                END;
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chunks (
                    id INTEGER PRIMARY KEY,
                    document_id INTEGER NOT NULL,
                    generation TEXT NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    content TEXT NOT NULL,
                    start_position INTEGER NOT NULL,
                    end_position INTEGER NOT NULL,
                    token_count INTEGER NOT NULL,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY(document_id) REFERENCES documents(id) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_chunks_document_generation
                    ON chunks(document_id, generation)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS embeddings (
                    id INTEGER PRIMARY KEY,
                    chunk_id INTEGER NOT NULL,
                    embedding TEXT NOT NULL,
                    embedding_model TEXT NOT NULL,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE(chunk_id, embedding_model),
                    FOREIGN KEY(chunk_id) REFERENCES chunks(id) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_embeddings_model
                    ON embeddings(embedding_model)
                """
            )

    @staticmethod
    def _row_to_document(row: sqlite3.Row) -> Document:
        return Document(
            id=row["id"],
            file_path=row["file_path"],
            title=row["title"],
            content=row["content"],
            content_hash=row["content_hash"],
            file_size=row["file_size"],
            last_modified=row["last_modified"],
            embedding_status=EmbeddingStatus(row["embedding_status"]),
            embedding_model=row["embedding_model"] or "",
            generation=row["generation"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def upsert_document(self, document: Document) -> int:
        """Insert or update the document keyed by ``file_path``.

        The active generation pointer is left untouched.
        """
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO documents(
                    file_path, title, content, content_hash, file_size,
                    last_modified, embedding_status, embedding_model
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(file_path) DO UPDATE SET
                    title = excluded.title,
                    content = excluded.content,
                    content_hash = excluded.content_hash,
                    file_size = excluded.file_size,
                    last_modified = excluded.last_modified,
                    embedding_status = excluded.embedding_status,
                    embedding_model = excluded.embedding_model
                """,
                (
                    document.file_path,
                    document.title,
                    document.content,
                    document.content_hash,
                    document.file_size,
                    document.last_modified,
                    EmbeddingStatus(document.embedding_status).value,
                    document.embedding_model,
                ),
            )
            row = conn.execute(
                "SELECT id FROM documents WHERE file_path = ?", (document.file_path,)
            ).fetchone()
        return int(row["id"])

    def get_document(self, file_path: str) -> Document | None:
        rows = self._query("SELECT * FROM documents WHERE file_path = ?", (file_path,))
        return self._row_to_document(rows[0]) if rows else None

    def get_all_documents(self) -> List[Document]:
        rows = self._query("SELECT * FROM documents ORDER BY id")
        return [self._row_to_document(row) for row in rows]

    def delete_document(self, file_path: str) -> bool:
        """Delete a document; chunks and embeddings go with it."""
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM documents WHERE file_path = ?", (file_path,))
        return cursor.rowcount > 0

    def begin_generation(self, document_id: int) -> str:
        """Return a fresh generation token for ``document_id``'s next chunk set."""
        return _new_generation()

    def activate_generation(self, document_id: int, generation: str) -> None:
        """Point the document at ``generation`` and drop the chunk set it replaces."""
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT generation FROM documents WHERE id = ?", (document_id,)
            ).fetchone()
            if row is None:
                raise PersistenceError(f"Document {document_id} does not exist")
            conn.execute(
                "UPDATE documents SET generation = ? WHERE id = ?", (generation, document_id)
            )
            previous = row["generation"]
            if previous is not None and previous != generation:
                conn.execute(
                    "DELETE FROM chunks WHERE document_id = ? AND generation = ?",
                    (document_id, previous),
                )

    def discard_generation(self, document_id: int, generation: str) -> None:
        """Delete an abandoned chunk set. The active generation is never touched."""
        with self.transaction() as conn:
            conn.execute(
                """
                DELETE FROM chunks
                WHERE document_id = ? AND generation = ?
                  AND generation IS NOT (SELECT generation FROM documents WHERE id = ?)
                """,
                (document_id, generation, document_id),
            )

    def _active_generation(self, conn: sqlite3.Connection, document_id: int) -> str:
        row = conn.execute(
            "SELECT generation FROM documents WHERE id = ?", (document_id,)
        ).fetchone()
        if row is None:
            raise PersistenceError(f"Document {document_id} does not exist")
        if row["generation"] is not None:
            return row["generation"]
        generation = _new_generation()
        conn.execute(
            "UPDATE documents SET generation = ? WHERE id = ?", (generation, document_id)
        )
        return generation

    def add_chunk(self, chunk: Chunk) -> int:
        """Insert a chunk, into the active generation when none is given."""
        with self.transaction() as conn:
            generation = chunk.generation or self._active_generation(conn, chunk.document_id)
            chunk_id = conn.execute(
                """
                INSERT INTO chunks(
                    document_id, generation, chunk_index, content,
                    start_position, end_position, token_count
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    chunk.document_id,
                    generation,
                    chunk.chunk_index,
                    chunk.content,
                    chunk.start_position,
                    chunk.end_position,
                    chunk.token_count,
                ),
            ).lastrowid
        return int(chunk_id)

    def get_chunks(self, document_id: int) -> List[Chunk]:
        rows = self._query(
            """
            SELECT c.*
            FROM chunks c
            JOIN documents d ON d.id = c.document_id AND d.generation = c.generation
            WHERE c.document_id = ?
            ORDER BY c.chunk_index
            """,
            (document_id,),
        )
        return [
            Chunk(
                id=row["id"],
                document_id=row["document_id"],
                chunk_index=row["chunk_index"],
                content=row["content"],
                start_position=row["start_position"],
                end_position=row["end_position"],
                token_count=row["token_count"],
                generation=row["generation"],
            )
            for row in rows
        ]

    def delete_chunks_for_document(self, document_id: int) -> None:
        """Delete every generation of a document's chunks, with their embeddings."""
        with self.transaction() as conn:
            conn.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))

    def add_embedding(self, embedding: Embedding) -> int:
        """Store a chunk's vector, replacing any earlier one for the same model."""
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO embeddings(chunk_id, embedding, embedding_model)
                VALUES (?, ?, ?)
                ON CONFLICT(chunk_id, embedding_model) DO UPDATE SET
                    embedding = excluded.embedding
                """,
                (embedding.chunk_id, embedding.embedding, embedding.embedding_model),
            )
            row = conn.execute(
                "SELECT id FROM embeddings WHERE chunk_id = ? AND embedding_model = ?",
                (embedding.chunk_id, embedding.embedding_model),
            ).fetchone()
        return int(row["id"])

    def get_all_embeddings(self, model: str | None = None) -> List[StoredEmbedding]:
        """Embeddings of active chunks, joined with chunk text and file path."""
        sql = """
            SELECT
                e.chunk_id AS chunk_id,
                c.document_id AS document_id,
                d.file_path AS file_path,
                c.content AS content,
                e.embedding AS embedding,
                e.embedding_model AS embedding_model
            FROM embeddings e
            JOIN chunks c ON c.id = e.chunk_id
            JOIN documents d ON d.id = c.document_id AND d.generation = c.generation
        """
        params: tuple = ()
        if model is not None:
            sql += " WHERE e.embedding_model = ?"
            params = (model,)
        sql += " ORDER BY e.chunk_id"
        return [
            StoredEmbedding(
                chunk_id=row["chunk_id"],
                document_id=row["document_id"],
                file_path=row["file_path"],
                content=row["content"],
                embedding=row["embedding"],
                embedding_model=row["embedding_model"],
            )
            for row in self._query(sql, params)
        ]

    def count_embeddings(self) -> int:
        rows = self._query(
            """
            SELECT COUNT(*)
            FROM embeddings e
            JOIN chunks c ON c.id = e.chunk_id
            JOIN documents d ON d.id = c.document_id AND d.generation = c.generation
            """
        )
        return int(rows[0][0])
