"""Document chunker - deterministic overlapping text splitting."""

import math
import re
import uuid
from uuid import UUID

from backend.docchat.errors import ConfigurationError
from backend.docchat.models.docs import ChunkDraft

# Zero-width matches just after each separator, coarsest tier first:
# paragraph break, line break, sentence end, any whitespace.
SEPARATOR_TIERS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?<=\n\n)"),
    re.compile(r"(?<=\n)"),
    re.compile(r"(?<=[.!?]\s)"),
    re.compile(r"(?<=\s)"),
)


def validate_chunking(size: int, overlap: int) -> None:
    """Reject chunk sizing that cannot make progress.

    Raises:
        ConfigurationError: If size is not positive, overlap is negative,
            or size does not exceed overlap
    """
    if size <= 0:
        raise ConfigurationError(f"chunk size must be positive, got {size}")
    if overlap < 0:
        raise ConfigurationError(f"chunk overlap must not be negative, got {overlap}")
    if size <= overlap:
        raise ConfigurationError(f"chunk size ({size}) must exceed overlap ({overlap})")


def _find_boundary(window: str, min_end: int) -> int:
    """Return the end offset for a chunk within window.

    Picks the last boundary of the coarsest separator tier lying beyond
    min_end, falling back to the raw window end.
    """
    for pattern in SEPARATOR_TIERS:
        best = -1
        for match in pattern.finditer(window):
            pos = match.start()
            if pos > min_end:
                best = pos
        if best != -1:
            return best
    return len(window)


def chunk_text(text: str, size: int = 1000, overlap: int = 200) -> list[str]:
    """Split text into overlapping chunks of at most `size` characters.

    Pure function with no I/O or randomness.

    Args:
        text: Extracted document text
        size: Maximum characters per chunk
        overlap: Characters each chunk repeats from the end of the previous one

    Returns:
        Ordered chunk texts. Every chunk after the first starts exactly
        `overlap` characters before the previous chunk ends, so
        `chunks[0] + "".join(c[overlap:] for c in chunks[1:]) == text`.

    Strategy:
        1. Blank text yields no chunks
        2. Text that fits in one chunk is returned unchanged
        3. Otherwise end each chunk at the last paragraph break inside the
           size window, else line break, else sentence end, else whitespace,
           else cut at exactly `size` characters
        4. A chunk always extends past the overlap region, so every step
           makes progress

    Raises:
        ConfigurationError: If size/overlap are invalid
    """
    validate_chunking(size, overlap)

    if not text or not text.strip():
        return []

    if len(text) <= size:
        return [text]

    chunks: list[str] = []
    start = 0

    while len(text) - start > size:
        window = text[start : start + size]
        end = start + _find_boundary(window, overlap)
        chunks.append(text[start:end])
        start = end - overlap

    chunks.append(text[start:])
    return chunks


def estimate_tokens(text: str) -> int:
    """Approximate token count (1 token ~ 4 characters)."""
    return math.ceil(len(text) / 4)


def chunk_id_for(document_id: UUID, chunk_index: int) -> UUID:
    """Stable chunk id, so reprocessing the same text yields the same ids."""
    return uuid.uuid5(document_id, str(chunk_index))


def build_chunk_drafts(
    document_id: UUID,
    text: str,
    *,
    size: int = 1000,
    overlap: int = 200,
) -> list[ChunkDraft]:
    """Chunk a document into ordinal-indexed drafts ready for embedding."""
    return [
        ChunkDraft(
            chunk_id=chunk_id_for(document_id, index),
            document_id=document_id,
            chunk_index=index,
            text=piece,
            token_count=estimate_tokens(piece),
        )
        for index, piece in enumerate(chunk_text(text, size=size, overlap=overlap))
    ]
