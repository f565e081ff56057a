"""Text helpers including paragraph-aware chunking."""

from __future__ import annotations

import math
import re
from typing import List

from noteindex.models import ChunkData

PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
PARAGRAPH_SEPARATOR = "\n\n"


def estimate_token_count(text: str) -> int:
    """Rough token estimate (~4 chars per token)."""
    return math.ceil(len(text) / 4)


def split_paragraphs(text: str) -> List[str]:
    """Split on blank lines, dropping empty paragraphs."""
    return [part for part in PARAGRAPH_BREAK.split(text) if part.strip()]


def _make_chunk(current: str, start_position: int) -> ChunkData:
    return ChunkData(
        content=current.strip(),
        start_position=start_position,
        end_position=start_position + len(current),
        token_count=estimate_token_count(current),
    )


def chunk_document(text: str, *, chunk_size: int = 1000, overlap: int = 200) -> List[ChunkData]:
    """Split text into paragraph-aligned chunks of at most ``chunk_size`` characters.

    Paragraphs are never split: a paragraph longer than ``chunk_size`` becomes a
    single oversized chunk. When ``overlap`` is positive each new chunk starts
    with the last ``overlap`` characters of the previous accumulator, and
    positions are offsets into that overlapping reconstruction rather than
    into ``text``.
    """
    chunks: List[ChunkData] = []
    if not text or not text.strip():
        return chunks

    current = ""
    start_position = 0

    for paragraph in split_paragraphs(text):
        paragraph += PARAGRAPH_SEPARATOR

        if len(current) + len(paragraph) > chunk_size and current:
            chunk = _make_chunk(current, start_position)
            chunks.append(chunk)

            if overlap > 0 and len(current) > overlap:
                current = current[-overlap:] + paragraph
                start_position = chunk.end_position - overlap
            else:
                current = paragraph
                start_position = chunk.end_position
        else:
            current += paragraph

    if current.strip():
        chunks.append(_make_chunk(current, start_position))

    return chunks
