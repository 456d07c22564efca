"""Vector index interface, cosine similarity, and in-memory implementation."""

from collections.abc import Sequence
from typing import Protocol
from uuid import UUID

import numpy as np

from backend.docchat.models.docs import IndexedChunk, ScoredChunk


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors, in [-1, 1].

    Returns 0.0 when either vector has zero magnitude, the lengths differ, or
    the result is not finite (NaN or inf components).
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    if va.shape != vb.shape or va.size == 0:
        return 0.0

    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    score = float(np.dot(va, vb)) / (norm_a * norm_b)
    if not np.isfinite(score):
        return 0.0
    return max(-1.0, min(1.0, score))


def rank_candidates(candidates: list[ScoredChunk], limit: int) -> list[ScoredChunk]:
    """Sort by score descending (chunk_id ascending on ties) and cap at limit."""
    candidates.sort(key=lambda c: (-c.score, str(c.chunk_id)))
    return candidates[:limit]


class VectorIndex(Protocol):
    """Owner-scoped similarity index over chunk embeddings."""

    async def upsert(
        self, owner_id: UUID, document_id: UUID, chunks: list[IndexedChunk]
    ) -> None:
        """Replace all chunks of a document, atomically.

        Args:
            owner_id: Document owner
            document_id: Document whose chunk set is replaced
            chunks: New chunk set (may be empty)
        """
        ...

    async def search(
        self, owner_id: UUID, query_vector: list[float], candidate_limit: int
    ) -> list[ScoredChunk]:
        """Return the owner's chunks ranked by cosine similarity.

        Args:
            owner_id: Owner whose chunks are searched; other owners are never visible
            query_vector: Query embedding
            candidate_limit: Maximum number of candidates

        Returns:
            Candidates sorted by score descending, unfiltered by threshold
        """
        ...

    async def delete_document(self, owner_id: UUID, document_id: UUID) -> int:
        """Remove a document's chunks.

        Returns:
            Number of chunks removed
        """
        ...


class InMemoryVectorIndex:
    """Brute-force in-memory implementation of VectorIndex."""

    def __init__(self) -> None:
        self._chunks: dict[tuple[UUID, UUID], list[IndexedChunk]] = {}

    async def upsert(
        self, owner_id: UUID, document_id: UUID, chunks: list[IndexedChunk]
    ) -> None:
        """Replace all chunks of a document."""
        # Single assignment, no await: readers see the old or the new set, never a mix
        self._chunks[(owner_id, document_id)] = list(chunks)

    async def search(
        self, owner_id: UUID, query_vector: list[float], candidate_limit: int
    ) -> list[ScoredChunk]:
        """Scan every chunk of the owner."""
        if candidate_limit <= 0:
            return []

        candidates: list[ScoredChunk] = []
        for (chunk_owner, _document_id), chunks in self._chunks.items():
            # Enforce tenancy
            if chunk_owner != owner_id:
                continue

            for chunk in chunks:
                candidates.append(
                    ScoredChunk(
                        chunk_id=chunk.chunk_id,
                        document_id=chunk.document_id,
                        chunk_index=chunk.chunk_index,
                        text=chunk.text,
                        score=cosine_similarity(query_vector, chunk.embedding),
                    )
                )

        return rank_candidates(candidates, candidate_limit)

    async def delete_document(self, owner_id: UUID, document_id: UUID) -> int:
        """Remove a document's chunks."""
        removed = self._chunks.pop((owner_id, document_id), [])
        return len(removed)

    def count(self, owner_id: UUID, document_id: UUID) -> int:
        """Number of indexed chunks for a document."""
        return len(self._chunks.get((owner_id, document_id), []))
