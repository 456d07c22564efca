"""Top-k retriever - rank index candidates for a query."""

import logging
from uuid import UUID

from backend.docchat.db.repositories import DocumentRepository
from backend.docchat.errors import ConfigurationError
from backend.docchat.models.docs import RetrievedChunk, ScoredChunk
from backend.docchat.rag.embeddings import EmbeddingClient
from backend.docchat.rag.vector_index import VectorIndex, rank_candidates

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
DEFAULT_MIN_SIMILARITY = 0.1


class Retriever:
    """Embeds queries and selects the best owner-scoped chunks."""

    def __init__(
        self,
        embedder: EmbeddingClient,
        index: VectorIndex,
        documents: DocumentRepository,
        *,
        candidate_multiplier: int = 4,
    ) -> None:
        if candidate_multiplier < 1:
            raise ConfigurationError(
                f"candidate_multiplier must be at least 1, got {candidate_multiplier}"
            )
        self.embedder = embedder
        self.index = index
        self.documents = documents
        self.candidate_multiplier = candidate_multiplier

    async def embed_query(self, query_text: str) -> list[float]:
        """Embed a single query text."""
        vectors = await self.embedder.embed([query_text])
        return vectors[0]

    async def retrieve_by_vector(
        self,
        owner_id: UUID,
        query_vector: list[float],
        top_k: int = DEFAULT_TOP_K,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
    ) -> list[RetrievedChunk]:
        """Rank the owner's chunks against an already embedded query.

        Scoring strategy:
        - Fetch top_k * candidate_multiplier candidates from the index
        - Drop candidates with score <= min_similarity
        - Sort by score descending, then by chunk_id (for determinism)
        - Keep chunks whose document still resolves for this owner
        - Apply top_k

        Returns:
            Ranked chunks; empty when nothing clears the threshold
        """
        if top_k < 1:
            raise ConfigurationError(f"top_k must be at least 1, got {top_k}")

        candidate_limit = max(top_k, top_k * self.candidate_multiplier)
        candidates = await self.index.search(owner_id, query_vector, candidate_limit)

        passing: list[ScoredChunk] = [c for c in candidates if c.score > min_similarity]
        if not passing:
            logger.info(
                f"No chunks above similarity {min_similarity} "
                f"({len(candidates)} candidates) for owner {owner_id}"
            )
            return []

        ranked = rank_candidates(passing, len(passing))
        titles = await self.documents.get_titles(
            owner_id, list({c.document_id for c in ranked})
        )

        results: list[RetrievedChunk] = []
        for candidate in ranked:
            title = titles.get(candidate.document_id)
            if title is None:
                continue
            results.append(
                RetrievedChunk(
                    chunk_id=candidate.chunk_id,
                    document_id=candidate.document_id,
                    document_title=title,
                    chunk_index=candidate.chunk_index,
                    text=candidate.text,
                    score=candidate.score,
                )
            )
            if len(results) == top_k:
                break

        return results

    async def retrieve(
        self,
        owner_id: UUID,
        query_text: str,
        top_k: int = DEFAULT_TOP_K,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
    ) -> list[RetrievedChunk]:
        """Embed the query and return up to top_k chunks above min_similarity."""
        query_vector = await self.embed_query(query_text)
        return await self.retrieve_by_vector(
            owner_id, query_vector, top_k=top_k, min_similarity=min_similarity
        )
