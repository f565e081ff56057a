"""Embedding model management.

Two backends sit behind :class:`EmbeddingClient`:

- ``openai``: any OpenAI-compatible ``/embeddings`` endpoint, addressed by the
  config's ``api_url`` and ``api_key``.
- ``sentence-transformers``: a local ``SentenceTransformer`` model, loaded on
  first use and run in a worker thread so the event loop stays responsive.

Neither backend retries. A failed call raises :class:`EmbeddingProviderError`
and the caller decides what to skip.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List

import numpy as np
from openai import AsyncOpenAI, OpenAIError

from noteindex.config import EmbeddingApiConfig
from noteindex.errors import EmbeddingProviderError

DEFAULT_LOCAL_MODEL = "sentence-transformers/all-mpnet-base-v2"

logger = logging.getLogger(__name__)


class OpenAIEmbeddingBackend:
    """Calls an OpenAI-compatible embeddings API, one client per config."""

    def __init__(self) -> None:
        self._clients: Dict[str, AsyncOpenAI] = {}

    def _get_client(self, config: EmbeddingApiConfig) -> AsyncOpenAI:
        client = self._clients.get(config.id)
        if client is None:
            client = AsyncOpenAI(api_key=config.api_key or None, base_url=config.api_url)
            self._clients[config.id] = client
        return client

    async def embed(self, text: str, config: EmbeddingApiConfig) -> List[float]:
        try:
            # The client constructor raises when no key is configured anywhere
            client = self._get_client(config)
            response = await client.embeddings.create(model=config.model_name, input=text)
        except OpenAIError as exc:
            raise EmbeddingProviderError(
                f"Embedding request to {config.name} failed: {exc}"
            ) from exc

        if not response.data or not response.data[0].embedding:
            raise EmbeddingProviderError(f"Empty embedding returned by {config.name}")
        return list(response.data[0].embedding)


class SentenceTransformerBackend:
    """Encodes text with a locally loaded sentence-transformers model."""

    def __init__(self, *, device: str | None = None, normalize: bool = True) -> None:
        self.device = device
        self.normalize = normalize
        self._models: Dict[str, Any] = {}

    def _load_model(self, model_name: str) -> Any:
        """Load the SentenceTransformer model, caching it by name."""
        model = self._models.get(model_name)
        if model is None:
            from sentence_transformers import SentenceTransformer

            logger.info("Loading local embedding model %s", model_name)
            model = SentenceTransformer(model_name, device=self.device)
            self._models[model_name] = model
        return model

    def _encode(self, text: str, model_name: str) -> np.ndarray:
        model = self._load_model(model_name)
        return model.encode(
            [text],
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=self.normalize,
        )[0]

    async def embed(self, text: str, config: EmbeddingApiConfig) -> List[float]:
        try:
            vector = await asyncio.to_thread(self._encode, text, config.model_name)
        except Exception as exc:
            raise EmbeddingProviderError(
                f"Local model {config.model_name} failed to encode: {exc}"
            ) from exc
        return np.asarray(vector, dtype="float32").tolist()


class EmbeddingClient:
    """Routes embedding requests to the backend named by each config's provider."""

    def __init__(
        self,
        openai_backend: OpenAIEmbeddingBackend | None = None,
        local_backend: SentenceTransformerBackend | None = None,
    ) -> None:
        self.openai_backend = openai_backend or OpenAIEmbeddingBackend()
        self.local_backend = local_backend or SentenceTransformerBackend()

    async def embed(self, text: str, config: EmbeddingApiConfig) -> List[float]:
        """Return the embedding vector for ``text`` using ``config``'s model."""
        if config.provider == "sentence-transformers":
            return await self.local_backend.embed(text, config)
        if config.provider == "openai":
            return await self.openai_backend.embed(text, config)
        raise EmbeddingProviderError(f"Unknown embedding provider: {config.provider}")
