"""Semantic search interface."""

from __future__ import annotations

import json
import logging
from typing import List, Sequence

import numpy as np

from noteindex.config import AppConfig
from noteindex.embedding.encoder import EmbeddingClient
from noteindex.errors import (
    ConfigurationError,
    EmbeddingProviderError,
    PersistenceError,
    VectorParseError,
)
from noteindex.index.storage import IndexRepository
from noteindex.models import SearchResult

LOGGER = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Cosine of the angle between two vectors, 0.0 when either has zero norm."""
    left = np.asarray(a, dtype="float64")
    right = np.asarray(b, dtype="float64")
    if left.shape != right.shape:
        raise ValueError(f"Dimension mismatch: {left.shape} vs {right.shape}")

    norm = np.sqrt(np.dot(left, left) * np.dot(right, right))
    if norm == 0:
        return 0.0
    return float(np.clip(np.dot(left, right) / norm, -1.0, 1.0))


def parse_vector(raw: str) -> np.ndarray:
    """Deserialize a stored JSON vector."""
    try:
        values = json.loads(raw)
        vector = np.asarray(values, dtype="float64")
    except (TypeError, ValueError) as exc:
        raise VectorParseError(f"Invalid stored embedding: {exc}") from exc
    if vector.ndim != 1 or vector.size == 0 or not np.all(np.isfinite(vector)):
        raise VectorParseError("Stored embedding is not a non-empty finite vector")
    return vector


class SimilaritySearchEngine:
    """High-level API to rank stored chunks against a query."""

    def __init__(
        self,
        config: AppConfig,
        client: EmbeddingClient,
        repository: IndexRepository,
    ) -> None:
        self.config = config
        self.client = client
        self.repository = repository

    async def search_documents(
        self,
        query: str,
        max_results: int = 10,
        similarity_threshold: float = 0.7,
        embedding_config_id: str | None = None,
    ) -> List[SearchResult]:
        """Return chunks at or above ``similarity_threshold``, best first.

        Only embeddings produced by the same model as the query are compared.
        Equal similarities are ordered by chunk id.
        """
        try:
            model_config = self.config.resolve_embedding_config(embedding_config_id)
        except ConfigurationError as exc:
            LOGGER.debug("Search unavailable: %s", exc)
            return []

        try:
            query_vector = np.asarray(
                await self.client.embed(query, model_config), dtype="float64"
            )
        except EmbeddingProviderError as exc:
            LOGGER.error("Failed to embed query: %s", exc)
            return []

        try:
            stored = self.repository.get_all_embeddings(model_config.model_name)
        except PersistenceError as exc:
            LOGGER.error("Failed to load embeddings: %s", exc)
            return []

        results: List[SearchResult] = []
        for item in stored:
            try:
                similarity = cosine_similarity(query_vector, parse_vector(item.embedding))
            except (VectorParseError, ValueError):
                continue
            if similarity >= similarity_threshold:
                results.append(
                    SearchResult(
                        file_path=item.file_path,
                        content=item.content,
                        similarity=similarity,
                        document_id=item.document_id,
                        chunk_id=item.chunk_id,
                    )
                )

        results.sort(key=lambda result: (-result.similarity, result.chunk_id))
        return results[: max(max_results, 0)]
