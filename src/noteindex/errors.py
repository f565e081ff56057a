"""Exception hierarchy for indexing and search failures."""

from __future__ import annotations


class NoteIndexError(Exception):
    """Base class for noteindex errors."""


class ConfigurationError(NoteIndexError):
    """RAG is disabled or no usable embedding configuration exists."""


class EmbeddingProviderError(NoteIndexError):
    """The embedding backend failed to return a vector."""


class PersistenceError(NoteIndexError):
    """A read or write against the index store failed."""


class EmptyContentError(NoteIndexError):
    """Chunking produced no chunks."""


class VectorParseError(NoteIndexError):
    """A stored embedding could not be deserialized."""
