"""Corpus-wide counters over the index store."""

from __future__ import annotations

import logging

from noteindex.errors import PersistenceError
from noteindex.index.storage import IndexRepository
from noteindex.models import EmbeddingStatus, RAGStats

LOGGER = logging.getLogger(__name__)


class StatsAggregator:
    def __init__(self, repository: IndexRepository) -> None:
        self.repository = repository

    def get_rag_stats(self) -> RAGStats:
        """Count documents by status, chunks and embeddings; zeros if the store fails."""
        try:
            documents = self.repository.get_all_documents()
            stats = RAGStats(total_documents=len(documents))
            for document in documents:
                status = document.embedding_status
                if status is EmbeddingStatus.COMPLETED:
                    stats.embedded_documents += 1
                elif status is EmbeddingStatus.FAILED:
                    stats.failed_documents += 1
                else:
                    # pending or processing
                    stats.pending_documents += 1
                if document.id is not None:
                    stats.total_chunks += len(self.repository.get_chunks(document.id))
            stats.total_embeddings = self.repository.count_embeddings()
        except PersistenceError as exc:
            LOGGER.error("Failed to collect RAG stats: %s", exc)
            return RAGStats()
        return stats
