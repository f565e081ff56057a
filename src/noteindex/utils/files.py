"""Utility helpers for working with note files."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterable, Iterator

NOTE_SUFFIXES = frozenset({".md", ".markdown", ".txt"})


def iter_note_paths(inputs: Iterable[Path]) -> Iterator[Path]:
    """Yield note paths from input paths, descending into directories."""
    for item in inputs:
        if item.is_dir():
            yield from iter_note_paths(
                sorted(child for child in item.rglob("*") if child.is_file())
            )
        elif item.is_file() and item.suffix.lower() in NOTE_SUFFIXES:
            yield item


def compute_content_hash(content: str) -> str:
    """Compute the MD5 fingerprint used to detect changed notes."""
    return hashlib.md5(content.encode("utf-8")).hexdigest()
