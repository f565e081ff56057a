"""Document indexing pipeline."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Callable, List

from noteindex.config import AppConfig, EmbeddingApiConfig
from noteindex.embedding.encoder import EmbeddingClient
from noteindex.errors import (
    ConfigurationError,
    EmbeddingProviderError,
    EmptyContentError,
    PersistenceError,
)
from noteindex.index.storage import IndexRepository
from noteindex.models import (
    Chunk,
    ChunkData,
    Document,
    Embedding,
    EmbeddingResult,
    EmbeddingStatus,
)
from noteindex.utils.files import compute_content_hash
from noteindex.utils.text import chunk_document

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


def _default_title(file_path: str) -> str:
    return PurePath(file_path).name or file_path


@dataclass(slots=True)
class BatchStats:
    success: int = 0
    failed: int = 0
    skipped: int = 0
    total: int = 0
    processed_files: List[str] = field(default_factory=list)

    def increment(self, status: str, file_path: str) -> None:
        if status == "success":
            self.success += 1
        elif status == "skipped":
            self.skipped += 1
        else:
            self.failed += 1
        self.processed_files.append(file_path)


class IndexingPipeline:
    """Hashes, chunks, embeds and stores one note at a time."""

    def __init__(
        self,
        config: AppConfig,
        client: EmbeddingClient,
        repository: IndexRepository,
    ) -> None:
        self.config = config
        self.client = client
        self.repository = repository

    async def embed_document(
        self,
        file_path: str,
        content: str,
        title: str | None = None,
        embedding_config_id: str | None = None,
    ) -> EmbeddingResult:
        """Index ``content`` under ``file_path``.

        Unchanged content already ``completed`` with the same model is not
        re-indexed.
        Chunks whose embedding or persistence fails are skipped; the document
        ends ``completed`` when at least one chunk was embedded.
        """
        try:
            model_config = self.config.resolve_embedding_config(embedding_config_id)
        except ConfigurationError as exc:
            return EmbeddingResult(success=False, message=str(exc))

        content_hash = compute_content_hash(content)

        try:
            existing = self.repository.get_document(file_path)
            if (
                existing is not None
                and existing.content_hash == content_hash
                and existing.embedding_status is EmbeddingStatus.COMPLETED
                and existing.embedding_model == model_config.model_name
            ):
                LOGGER.debug("Skipping unchanged document %s", file_path)
                return EmbeddingResult(
                    success=True,
                    message="Document is up to date, no re-embedding needed",
                    document_id=existing.id,
                    up_to_date=True,
                )

            document = Document(
                file_path=file_path,
                title=title or _default_title(file_path),
                content=content,
                content_hash=content_hash,
                file_size=len(content.encode("utf-8")),
                last_modified=int(time.time() * 1000),
                embedding_status=EmbeddingStatus.PROCESSING,
                embedding_model=model_config.model_name,
            )
            document.id = self.repository.upsert_document(document)
            return await self._embed_chunks(document, model_config)
        except PersistenceError as exc:
            LOGGER.error("Failed to index %s: %s", file_path, exc)
            return EmbeddingResult(success=False, message=f"Embedding failed: {exc}")

    async def _embed_chunks(
        self, document: Document, model_config: EmbeddingApiConfig
    ) -> EmbeddingResult:
        assert document.id is not None
        generation = self.repository.begin_generation(document.id)
        try:
            return await self._fill_generation(document, model_config, generation)
        except PersistenceError as exc:
            LOGGER.error("Failed to index %s: %s", document.file_path, exc)
            self._abandon(document, generation)
            return EmbeddingResult(
                success=False, message=f"Embedding failed: {exc}", document_id=document.id
            )
        except BaseException:
            self._abandon(document, generation)
            raise

    async def _fill_generation(
        self, document: Document, model_config: EmbeddingApiConfig, generation: str
    ) -> EmbeddingResult:
        assert document.id is not None
        try:
            chunks = self._chunk(document)
        except EmptyContentError as exc:
            LOGGER.warning("%s", exc)
            self._finish(document, generation, EmbeddingStatus.FAILED)
            return EmbeddingResult(
                success=False,
                message="Document is empty or could not be chunked",
                document_id=document.id,
                chunks_count=0,
                embeddings_count=0,
            )

        success_count = 0
        for index, data in enumerate(chunks):
            try:
                chunk_id = self.repository.add_chunk(
                    Chunk(
                        document_id=document.id,
                        chunk_index=index,
                        content=data.content,
                        start_position=data.start_position,
                        end_position=data.end_position,
                        token_count=data.token_count,
                        generation=generation,
                    )
                )
                vector = await self.client.embed(data.content, model_config)
                self.repository.add_embedding(
                    Embedding(
                        chunk_id=chunk_id,
                        embedding=json.dumps(vector),
                        embedding_model=model_config.model_name,
                    )
                )
            except (EmbeddingProviderError, PersistenceError) as exc:
                LOGGER.warning(
                    "Skipping chunk %d of %s: %s", index, document.file_path, exc
                )
                continue
            success_count += 1

        status = EmbeddingStatus.COMPLETED if success_count > 0 else EmbeddingStatus.FAILED
        self._finish(document, generation, status)
        LOGGER.info(
            "Embedded %d/%d chunks of %s", success_count, len(chunks), document.file_path
        )
        return EmbeddingResult(
            success=success_count > 0,
            message=f"Embedded {success_count}/{len(chunks)} chunks",
            document_id=document.id,
            chunks_count=len(chunks),
            embeddings_count=success_count,
        )

    def _chunk(self, document: Document) -> List[ChunkData]:
        chunks = chunk_document(
            document.content,
            chunk_size=self.config.chunk_size,
            overlap=self.config.chunk_overlap,
        )
        if not chunks:
            raise EmptyContentError(f"No chunks produced for {document.file_path}")
        return chunks

    def _finish(self, document: Document, generation: str, status: EmbeddingStatus) -> None:
        assert document.id is not None
        self.repository.activate_generation(document.id, generation)
        document.embedding_status = status
        document.last_modified = int(time.time() * 1000)
        self.repository.upsert_document(document)

    def _abandon(self, document: Document, generation: str) -> None:
        """Drop a chunk set that never became active and mark the document failed."""
        assert document.id is not None
        try:
            self.repository.discard_generation(document.id, generation)
        except PersistenceError as exc:
            LOGGER.error("Unable to discard chunks of %s: %s", document.file_path, exc)
        document.embedding_status = EmbeddingStatus.FAILED
        try:
            self.repository.upsert_document(document)
        except PersistenceError as exc:
            LOGGER.error("Unable to mark %s as failed: %s", document.file_path, exc)

    def remove_document(self, file_path: str) -> bool:
        """Drop a note and its chunks and embeddings from the index."""
        try:
            return self.repository.delete_document(file_path)
        except PersistenceError as exc:
            LOGGER.error("Failed to remove %s: %s", file_path, exc)
            return False


class BatchReindexer:
    """Runs the pipeline over every stored document, one at a time."""

    def __init__(self, pipeline: IndexingPipeline) -> None:
        self.pipeline = pipeline

    async def embed_all_documents(self, on_progress: ProgressCallback | None = None) -> BatchStats:
        config = self.pipeline.config
        stats = BatchStats()
        if not config.rag_enabled:
            LOGGER.warning("RAG is disabled, nothing to re-index")
            return stats

        try:
            documents = self.pipeline.repository.get_all_documents()
        except PersistenceError as exc:
            LOGGER.error("Unable to list documents: %s", exc)
            return stats

        stats.total = len(documents)
        current_model = config.current_model

        for position, document in enumerate(documents, start=1):
            if on_progress is not None:
                on_progress(position, stats.total, document.file_path)

            if (
                document.embedding_status is EmbeddingStatus.COMPLETED
                and document.embedding_model == current_model
            ):
                stats.increment("skipped", document.file_path)
                continue

            LOGGER.info("Re-indexing (%d/%d): %s", position, stats.total, document.file_path)
            result = await self.pipeline.embed_document(
                document.file_path, document.content, document.title
            )
            stats.increment("success" if result.success else "failed", document.file_path)

        return stats
