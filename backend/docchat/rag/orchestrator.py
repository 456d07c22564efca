"""RAG orchestrator - ingest and query operations.

Ingest: text -> chunker -> embeddings (batch) -> vector index upsert.
Query:  question -> embedding -> retrieval -> context assembly -> generation
        -> persisted answer with sources.

The orchestrator is the only component callers (e.g. the HTTP layer) use.
"""

import asyncio
import logging
from uuid import UUID

from backend.docchat.config import Settings
from backend.docchat.db.repositories import ConversationStore, DocumentRepository
from backend.docchat.errors import (
    EmbeddingProviderError,
    GenerationProviderError,
    NotFoundError,
    ProviderError,
)
from backend.docchat.llm.client import GenerationClient, ResilientGenerationClient
from backend.docchat.models.answer import IngestResult, QueryResult, QueryStage
from backend.docchat.models.conversation import (
    ConversationSession,
    Message,
    Role,
    Source,
    make_excerpt,
)
from backend.docchat.models.docs import Document, DocumentStatus, IndexedChunk, RetrievedChunk
from backend.docchat.providers.executor import ProviderCallConfig, ProviderCallExecutor
from backend.docchat.rag.chunker import build_chunk_drafts, validate_chunking
from backend.docchat.rag.context import ContextAssembler
from backend.docchat.rag.embeddings import EmbeddingClient, ResilientEmbeddingClient
from backend.docchat.rag.locks import KeyedLock
from backend.docchat.rag.retriever import Retriever
from backend.docchat.rag.vector_index import VectorIndex
from backend.docchat.utils.logging import StructuredProviderLogger
from backend.docchat.utils.metrics import (
    PrometheusProviderMetrics,
    ingested_chunks_total,
    query_outcomes_total,
)

logger = logging.getLogger(__name__)

SEARCH_FAILED_ANSWER = (
    "Sorry, I couldn't search your documents right now. Please try again in a moment."
)
GENERATION_FAILED_ANSWER = (
    "Sorry, I couldn't generate an answer right now. Please try again in a moment."
)
SESSION_TITLE_CHARS = 60


def session_title_from(question: str) -> str:
    """Derive a session title from the opening question."""
    title = " ".join(question.split())
    if len(title) <= SESSION_TITLE_CHARS:
        return title
    return title[: SESSION_TITLE_CHARS - 3].rstrip() + "..."


def to_source(chunk: RetrievedChunk) -> Source:
    """Build the citation for a retrieved chunk, clamping similarity into [0, 1]."""
    return Source(
        chunk_id=chunk.chunk_id,
        document_id=chunk.document_id,
        document_title=chunk.document_title,
        similarity=max(0.0, min(1.0, chunk.score)),
        excerpt=make_excerpt(chunk.text),
    )


class RAGOrchestrator:
    """Composes chunking, embeddings, index, retrieval, assembly and generation."""

    def __init__(
        self,
        *,
        documents: DocumentRepository,
        index: VectorIndex,
        conversations: ConversationStore,
        embedder: EmbeddingClient,
        generator: GenerationClient,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        top_k: int = 5,
        min_similarity: float = 0.1,
        history_limit: int = 10,
        candidate_multiplier: int = 4,
        assembler: ContextAssembler | None = None,
    ) -> None:
        validate_chunking(chunk_size, chunk_overlap)

        self.documents = documents
        self.index = index
        self.conversations = conversations
        self.embedder = embedder
        self.generator = generator
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.top_k = top_k
        self.min_similarity = min_similarity
        self.history_limit = history_limit

        self.retriever = Retriever(
            embedder, index, documents, candidate_multiplier=candidate_multiplier
        )
        self.assembler = assembler or ContextAssembler(max_history_messages=history_limit)

        self._document_locks = KeyedLock()
        self._session_locks = KeyedLock()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def add_document(
        self, owner_id: UUID, title: str, text: str, *, mime_type: str = "text/plain"
    ) -> tuple[Document, IngestResult]:
        """Create a document record and ingest its text."""
        document = await self.documents.create_document(
            owner_id, title, text, mime_type=mime_type
        )
        result = await self.ingest(owner_id, document.document_id, text)
        return document, result

    async def ingest(self, owner_id: UUID, document_id: UUID, full_text: str) -> IngestResult:
        """Chunk, embed and index a document, replacing any previous chunk set.

        Serialized per (owner, document). Either the full chunk set commits and
        the document becomes processed, or nothing commits and the document is
        marked failed with no searchable chunks.

        Raises:
            NotFoundError: Document missing or not owned by owner_id
            ConfigurationError: Invalid chunk sizing
            EmbeddingProviderError: Embedding failed after retries
        """
        async with self._document_locks.hold((owner_id, document_id)):
            document = await self.documents.get_document(owner_id, document_id)
            if document is None:
                raise NotFoundError(f"Document {document_id} not found")

            await self.documents.update_document(
                owner_id, document_id, status=DocumentStatus.pending
            )

            try:
                drafts = build_chunk_drafts(
                    document_id, full_text, size=self.chunk_size, overlap=self.chunk_overlap
                )
                vectors = await self.embedder.embed([draft.text for draft in drafts])
                if len(vectors) != len(drafts):
                    raise EmbeddingProviderError(
                        f"Got {len(vectors)} embeddings for {len(drafts)} chunks"
                    )
            except (Exception, asyncio.CancelledError) as e:
                logger.error(f"Ingest of document {document_id} failed before commit: {e!r}")
                await self._mark_failed(owner_id, document_id)
                raise

            indexed = [
                IndexedChunk(**draft.model_dump(), embedding=vector)
                for draft, vector in zip(drafts, vectors)
            ]

            # The commit runs to completion even if the caller is cancelled meanwhile
            commit = asyncio.ensure_future(
                self._commit(owner_id, document_id, full_text, indexed)
            )
            try:
                await asyncio.shield(commit)
            except asyncio.CancelledError:
                logger.warning(f"Ingest of document {document_id} cancelled during commit")
                await asyncio.wait([commit])
                if not commit.cancelled():
                    commit.exception()
                raise

            logger.info(f"Ingested document {document_id}: {len(indexed)} chunks")
            return IngestResult(document_id=document_id, chunk_count=len(indexed))

    async def _commit(
        self,
        owner_id: UUID,
        document_id: UUID,
        full_text: str,
        indexed: list[IndexedChunk],
    ) -> None:
        try:
            await self.index.upsert(owner_id, document_id, indexed)
        except Exception:
            await self._mark_failed(owner_id, document_id)
            raise

        await self.documents.update_document(
            owner_id,
            document_id,
            status=DocumentStatus.processed,
            chunk_count=len(indexed),
            text=full_text,
        )
        ingested_chunks_total.inc(len(indexed))

    async def _mark_failed(self, owner_id: UUID, document_id: UUID) -> None:
        await self.index.delete_document(owner_id, document_id)
        await self.documents.update_document(
            owner_id, document_id, status=DocumentStatus.failed, chunk_count=0
        )

    async def delete_document(self, owner_id: UUID, document_id: UUID) -> None:
        """Delete a document and its chunks.

        Raises:
            NotFoundError: Document missing or not owned by owner_id
        """
        async with self._document_locks.hold((owner_id, document_id)):
            if await self.documents.get_document(owner_id, document_id) is None:
                raise NotFoundError(f"Document {document_id} not found")

            removed = await self.index.delete_document(owner_id, document_id)
            await self.documents.delete_document(owner_id, document_id)
            logger.info(f"Deleted document {document_id} ({removed} chunks)")

    async def list_documents(self, owner_id: UUID) -> list[Document]:
        return await self.documents.list_documents(owner_id)

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def _advance(self, stages: list[QueryStage], stage: QueryStage, session_id: UUID) -> None:
        stages.append(stage)
        logger.debug(f"[query] session_id={session_id} stage={stage.value}")

    async def query(
        self,
        owner_id: UUID,
        question: str,
        session_id: UUID | None = None,
        *,
        title: str | None = None,
    ) -> QueryResult:
        """Answer a question from the owner's documents within a session.

        The user message is persisted before any provider call. Provider
        failures produce an apologetic assistant message tagged is_error
        instead of raising.

        Args:
            owner_id: Verified caller
            question: User question
            session_id: Existing session, or None to start one
            title: Title for a new session (defaults to the question)

        Returns:
            QueryResult with answer, session id, sources and reached stages

        Raises:
            NotFoundError: session_id given but not owned by owner_id
        """
        stages = [QueryStage.received]
        session_id = await self.conversations.get_or_create_session(
            owner_id, session_id, title or session_title_from(question)
        )

        async with self._session_locks.hold((owner_id, session_id)):
            history = await self.conversations.recent(session_id, self.history_limit)
            await self.conversations.append(session_id, Role.user, question)

            try:
                self._advance(stages, QueryStage.embedding, session_id)
                query_vector = await self.retriever.embed_query(question)

                self._advance(stages, QueryStage.retrieving, session_id)
                retrieved = await self.retriever.retrieve_by_vector(
                    owner_id,
                    query_vector,
                    top_k=self.top_k,
                    min_similarity=self.min_similarity,
                )

                self._advance(stages, QueryStage.assembling, session_id)
                prompt = self.assembler.assemble(question, retrieved, history)

                self._advance(stages, QueryStage.generating, session_id)
                answer = await self.generator.complete(
                    system_prompt=prompt.system_prompt,
                    history=prompt.history,
                    user_prompt=prompt.user_prompt,
                )
            except ProviderError as e:
                return await self._fail_query(session_id, stages, e)

            sources = [to_source(chunk) for chunk in prompt.context_chunks]
            await self.conversations.append(session_id, Role.assistant, answer, sources)
            self._advance(stages, QueryStage.persisted, session_id)
            query_outcomes_total.labels(stage=QueryStage.persisted.value).inc()

            logger.info(
                f"[query] session_id={session_id} answered with {len(sources)} source(s)"
            )
            return QueryResult(
                answer=answer, session_id=session_id, sources=sources, stages=stages
            )

    async def _fail_query(
        self, session_id: UUID, stages: list[QueryStage], error: ProviderError
    ) -> QueryResult:
        failed_at = stages[-1]
        self._advance(stages, QueryStage.failed, session_id)
        query_outcomes_total.labels(stage=QueryStage.failed.value).inc()
        logger.error(
            f"[query] session_id={session_id} failed at stage {failed_at.value}: {error!r}"
        )

        apology = (
            GENERATION_FAILED_ANSWER
            if isinstance(error, GenerationProviderError)
            else SEARCH_FAILED_ANSWER
        )
        await self.conversations.append(session_id, Role.assistant, apology, is_error=True)

        return QueryResult(
            answer=apology,
            session_id=session_id,
            sources=[],
            stages=stages,
            is_error=True,
            error=type(error).__name__,
        )

    async def list_sessions(self, owner_id: UUID) -> list[ConversationSession]:
        return await self.conversations.list_sessions(owner_id)

    async def list_messages(self, owner_id: UUID, session_id: UUID) -> list[Message]:
        return await self.conversations.list_messages(owner_id, session_id)


def create_orchestrator(
    settings: Settings,
    *,
    documents: DocumentRepository,
    index: VectorIndex,
    conversations: ConversationStore,
    embedder: EmbeddingClient,
    generator: GenerationClient,
) -> RAGOrchestrator:
    """Wire an orchestrator from settings, wrapping providers with retry policy."""
    executor = ProviderCallExecutor(
        metrics=PrometheusProviderMetrics(), logger=StructuredProviderLogger()
    )

    def call_config(timeout_s: float, error_cls: type[ProviderError]) -> ProviderCallConfig:
        return ProviderCallConfig(
            timeout_s=timeout_s,
            retry_count=settings.provider_retry_count,
            backoff_base_ms=settings.retry_backoff_base_ms,
            retry_jitter_min_ms=settings.retry_jitter_min_ms,
            retry_jitter_max_ms=settings.retry_jitter_max_ms,
            error_cls=error_cls,
        )

    return RAGOrchestrator(
        documents=documents,
        index=index,
        conversations=conversations,
        embedder=ResilientEmbeddingClient(
            embedder,
            executor,
            call_config(settings.embedding_timeout_s, EmbeddingProviderError),
        ),
        generator=ResilientGenerationClient(
            generator,
            executor,
            call_config(settings.generation_timeout_s, GenerationProviderError),
        ),
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
        top_k=settings.retrieval_top_k,
        min_similarity=settings.retrieval_min_similarity,
        history_limit=settings.history_limit,
        candidate_multiplier=settings.retrieval_candidate_multiplier,
        assembler=ContextAssembler(
            max_context_chars=settings.max_context_chars,
            max_history_messages=settings.history_limit,
        ),
    )
