"""Application configuration defaults and settings file loading."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal

from noteindex.errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "noteindex" / "settings.json"


def _get_default_db_path() -> Path:
    """Get the default database path based on platform and execution context."""
    user_db = Path.home() / "Documents" / "NoteIndex" / "noteindex.db"

    if getattr(sys, "frozen", False):
        return user_db

    # When running from source, prefer local data/ if it exists
    local_db = Path("data/noteindex.db")
    if local_db.exists():
        return local_db

    return user_db


@dataclass(slots=True)
class EmbeddingApiConfig:
    """One configured embedding model endpoint."""

    id: str
    name: str
    model_name: str
    api_key: str = ""
    api_url: str | None = None
    provider: Literal["openai", "sentence-transformers"] = "openai"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmbeddingApiConfig":
        try:
            return cls(
                id=str(data["id"]),
                name=data.get("name") or str(data["id"]),
                model_name=data["modelName"],
                api_key=data.get("apiKey", ""),
                api_url=data.get("apiUrl") or None,
                provider=data.get("provider", "openai"),
            )
        except KeyError as exc:
            raise ConfigurationError(f"Embedding config is missing {exc}") from exc


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    rag_enabled: bool = True
    chunk_size: int = 1000
    chunk_overlap: int = 200
    max_results: int = 10
    similarity_threshold: float = 0.7
    embedding_configs: List[EmbeddingApiConfig] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path

    @property
    def current_model(self) -> str | None:
        """Model name of the default (first) embedding config."""
        if not self.embedding_configs:
            return None
        return self.embedding_configs[0].model_name

    def resolve_embedding_config(self, config_id: str | None = None) -> EmbeddingApiConfig:
        """Pick the embedding config by id, or the first one when no id is given.

        Raises:
            ConfigurationError: RAG is disabled, nothing is configured, or the id
                does not match any entry.
        """
        if not self.rag_enabled:
            raise ConfigurationError("RAG is disabled")
        if not self.embedding_configs:
            raise ConfigurationError("No embedding API configured")
        if config_id is None:
            return self.embedding_configs[0]
        for candidate in self.embedding_configs:
            if candidate.id == config_id:
                return candidate
        raise ConfigurationError(f"Embedding config not found: {config_id}")


def load_config(path: Path | None = None) -> AppConfig:
    """Read a JSON settings file into an :class:`AppConfig`.

    A missing file yields the defaults. Keys follow the settings store layout:
    ``ragEnabled``, ``chunkSize``, ``chunkOverlap``, ``maxResults``,
    ``similarityThreshold``, ``dbPath`` and ``embeddingApiConfigs``.
    """
    settings_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if not settings_path.exists():
        return AppConfig()

    try:
        data = json.loads(settings_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Unable to read settings {settings_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {settings_path} must contain a JSON object")

    defaults = AppConfig()
    db_path = data.get("dbPath")
    return AppConfig(
        db_path=Path(db_path) if db_path else defaults.db_path,
        rag_enabled=bool(data.get("ragEnabled", defaults.rag_enabled)),
        chunk_size=int(data.get("chunkSize", defaults.chunk_size)),
        chunk_overlap=int(data.get("chunkOverlap", defaults.chunk_overlap)),
        max_results=int(data.get("maxResults", defaults.max_results)),
        similarity_threshold=float(
            data.get("similarityThreshold", defaults.similarity_threshold)
        ),
        embedding_configs=[
            EmbeddingApiConfig.from_dict(entry) for entry in data.get("embeddingApiConfigs", [])
        ],
    )
