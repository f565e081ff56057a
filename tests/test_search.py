"""Tests for similarity search."""

from __future__ import annotations

import asyncio
import json
import math
from unittest.mock import AsyncMock, MagicMock, patch

import numpy as np
import pytest

from noteindex.config import AppConfig, EmbeddingApiConfig
from noteindex.errors import EmbeddingProviderError, PersistenceError, VectorParseError
from noteindex.index.search import SimilaritySearchEngine, cosine_similarity, parse_vector
from noteindex.index.storage import SQLiteIndexRepository
from noteindex.models import Chunk, Document, Embedding, EmbeddingStatus

MODEL = "text-embedding-3-small"


class TestCosineSimilarity:
    """Test cosine_similarity function."""

    def test_identical_vectors(self) -> None:
        assert cosine_similarity([0.3, 0.4, 0.5], [0.3, 0.4, 0.5]) == 1.0

    def test_opposite_vectors(self) -> None:
        assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == -1.0

    def test_self_similarity_is_exact(self) -> None:
        """A vector against itself or its negation hits the bounds exactly."""
        rng = np.random.default_rng(7)
        for dims in (2, 8, 384, 1536):
            for vector in rng.normal(size=(250, dims)):
                assert cosine_similarity(vector, vector) == 1.0
                assert cosine_similarity(vector, -vector) == -1.0

    def test_orthogonal_vectors(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_scale_invariant(self) -> None:
        assert cosine_similarity([1.0, 1.0], [10.0, 10.0]) == pytest.approx(1.0)

    def test_zero_vector(self) -> None:
        assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0

    def test_dimension_mismatch(self) -> None:
        with pytest.raises(ValueError, match="Dimension mismatch"):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])

    def test_accepts_numpy_arrays(self) -> None:
        value = cosine_similarity(np.array([1.0, 0.0]), np.array([1.0, 1.0]))

        assert value == pytest.approx(1 / math.sqrt(2))
        assert isinstance(value, float)


class TestParseVector:
    def test_parses_json_list(self) -> None:
        vector = parse_vector("[0.5, -1.0, 2]")

        assert vector.dtype == np.float64
        assert vector.tolist() == [0.5, -1.0, 2.0]

    @pytest.mark.parametrize(
        "raw",
        ["not json", "{\"a\": 1}", "[]", "[[1.0], [2.0]]", "[\"x\"]", "[NaN]", "null"],
    )
    def test_rejects_invalid(self, raw: str) -> None:
        with pytest.raises(VectorParseError):
            parse_vector(raw)


@pytest.fixture
def repository(tmp_path):
    repo = SQLiteIndexRepository(tmp_path / "index.db")
    yield repo
    repo.close()


def seed(repository, file_path: str, vectors, model: str = MODEL) -> list[int]:
    """Store one document with a chunk per vector; return the chunk ids."""
    doc_id = repository.upsert_document(
        Document(
            file_path=file_path,
            title=file_path,
            content="",
            content_hash="h",
            file_size=0,
            last_modified=0,
            embedding_status=EmbeddingStatus.COMPLETED,
            embedding_model=model,
        )
    )
    chunk_ids = []
    for index, vector in enumerate(vectors):
        chunk_id = repository.add_chunk(
            Chunk(
                document_id=doc_id,
                chunk_index=index,
                content=f"{file_path} #{index}",
                start_position=0,
                end_position=0,
                token_count=0,
            )
        )
        raw = vector if isinstance(vector, str) else json.dumps(vector)
        repository.add_embedding(Embedding(chunk_id, raw, model))
        chunk_ids.append(chunk_id)
    return chunk_ids


def make_engine(repository, query_vector=(1.0, 0.0), config: AppConfig | None = None):
    if config is None:
        config = AppConfig(
            embedding_configs=[EmbeddingApiConfig(id="primary", name="Primary", model_name=MODEL)]
        )
    client = MagicMock()
    client.embed = AsyncMock(return_value=list(query_vector))
    return SimilaritySearchEngine(config, client, repository), client


class TestSimilaritySearchEngine:
    """Test ranking of stored chunks."""

    def test_threshold_and_order(self, repository) -> None:
        seed(repository, "/notes/a.md", [[1.0, 0.0], [0.0, 1.0], [0.8, 0.6]])
        engine, client = make_engine(repository)

        results = asyncio.run(engine.search_documents("query", similarity_threshold=0.7))

        assert [r.content for r in results] == ["/notes/a.md #0", "/notes/a.md #2"]
        assert results[0].similarity == pytest.approx(1.0)
        assert results[1].similarity == pytest.approx(0.8)
        assert results[0].file_path == "/notes/a.md"
        client.embed.assert_awaited_once()
        assert client.embed.await_args.args[0] == "query"

    def test_threshold_is_inclusive(self, repository) -> None:
        seed(repository, "/notes/a.md", [[0.8, 0.6]])
        engine, _ = make_engine(repository)

        results = asyncio.run(engine.search_documents("query", similarity_threshold=0.8))

        assert len(results) == 1

    def test_max_results(self, repository) -> None:
        seed(repository, "/notes/a.md", [[1.0, 0.1 * i] for i in range(6)])
        engine, _ = make_engine(repository)

        results = asyncio.run(
            engine.search_documents("query", max_results=2, similarity_threshold=0.0)
        )

        assert len(results) == 2
        assert results[0].similarity >= results[1].similarity

    def test_zero_max_results(self, repository) -> None:
        seed(repository, "/notes/a.md", [[1.0, 0.0]])
        engine, _ = make_engine(repository)

        assert asyncio.run(engine.search_documents("query", max_results=0)) == []

    def test_ties_ordered_by_chunk_id(self, repository) -> None:
        first = seed(repository, "/notes/a.md", [[2.0, 0.0]])
        second = seed(repository, "/notes/b.md", [[1.0, 0.0]])
        engine, _ = make_engine(repository)

        results = asyncio.run(engine.search_documents("query"))

        assert [r.chunk_id for r in results] == first + second

    def test_other_models_ignored(self, repository) -> None:
        seed(repository, "/notes/a.md", [[1.0, 0.0]], model="other-model")
        engine, _ = make_engine(repository)

        assert asyncio.run(engine.search_documents("query", similarity_threshold=0.0)) == []

    def test_unreadable_and_mismatched_vectors_skipped(self, repository) -> None:
        good = seed(repository, "/notes/a.md", ["corrupted", [1.0, 0.0, 0.0], [1.0, 0.0]])
        engine, _ = make_engine(repository)

        results = asyncio.run(engine.search_documents("query", similarity_threshold=0.0))

        assert [r.chunk_id for r in results] == good[2:]

    def test_empty_index(self, repository) -> None:
        engine, _ = make_engine(repository)

        assert asyncio.run(engine.search_documents("query")) == []

    def test_selects_embedding_config(self, repository) -> None:
        config = AppConfig(
            embedding_configs=[
                EmbeddingApiConfig(id="primary", name="Primary", model_name=MODEL),
                EmbeddingApiConfig(id="alt", name="Alt", model_name="alt-model"),
            ]
        )
        seed(repository, "/notes/a.md", [[1.0, 0.0]], model="alt-model")
        engine, client = make_engine(repository, config=config)

        results = asyncio.run(engine.search_documents("query", embedding_config_id="alt"))

        assert len(results) == 1
        assert client.embed.await_args.args[1].model_name == "alt-model"

    def test_no_embedding_config(self, repository) -> None:
        seed(repository, "/notes/a.md", [[1.0, 0.0]])
        engine, client = make_engine(repository, config=AppConfig())

        assert asyncio.run(engine.search_documents("query")) == []
        client.embed.assert_not_awaited()

    def test_rag_disabled(self, repository) -> None:
        config = AppConfig(
            rag_enabled=False,
            embedding_configs=[EmbeddingApiConfig(id="primary", name="Primary", model_name=MODEL)],
        )
        engine, client = make_engine(repository, config=config)

        assert asyncio.run(engine.search_documents("query")) == []
        client.embed.assert_not_awaited()

    def test_provider_failure(self, repository) -> None:
        seed(repository, "/notes/a.md", [[1.0, 0.0]])
        engine, client = make_engine(repository)
        client.embed.side_effect = EmbeddingProviderError("timeout")

        assert asyncio.run(engine.search_documents("query")) == []

    def test_store_failure(self, repository) -> None:
        engine, _ = make_engine(repository)

        with patch.object(
            repository, "get_all_embeddings", side_effect=PersistenceError("locked")
        ):
            assert asyncio.run(engine.search_documents("query")) == []
