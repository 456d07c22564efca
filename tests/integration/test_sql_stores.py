"""Integration tests for SQL repositories, vector index and conversation store."""

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.docchat.db.sql_repositories import (
    SqlConversationStore,
    SqlDocumentRepository,
    SqlVectorIndex,
)
from backend.docchat.errors import NotFoundError
from backend.docchat.llm.client import DeterministicStubClient
from backend.docchat.models.conversation import Role, Source
from backend.docchat.models.docs import DocumentStatus, IndexedChunk
from backend.docchat.rag.embeddings import DeterministicStubEmbeddingClient
from backend.docchat.rag.orchestrator import RAGOrchestrator

SessionFactory = async_sessionmaker[AsyncSession]


def make_chunks(document_id: uuid.UUID, embeddings: list[list[float]]) -> list[IndexedChunk]:
    return [
        IndexedChunk(
            chunk_id=uuid.uuid5(document_id, str(i)),
            document_id=document_id,
            chunk_index=i,
            text=f"chunk {i}",
            token_count=2,
            embedding=embedding,
        )
        for i, embedding in enumerate(embeddings)
    ]


class TestSqlDocumentRepository:
    """Test document persistence and tenancy."""

    @pytest.mark.asyncio
    async def test_create_get_update(
        self, sqlite_session_factory: SessionFactory, owner_id: uuid.UUID
    ) -> None:
        repo = SqlDocumentRepository(sqlite_session_factory)

        document = await repo.create_document(owner_id, "Doc", "text", mime_type="text/markdown")
        await repo.update_document(
            owner_id, document.document_id, status=DocumentStatus.processed, chunk_count=3
        )

        stored = await repo.get_document(owner_id, document.document_id)
        assert stored is not None
        assert stored.title == "Doc"
        assert stored.mime_type == "text/markdown"
        assert stored.status == DocumentStatus.processed
        assert stored.chunk_count == 3

    @pytest.mark.asyncio
    async def test_other_owner_sees_nothing(
        self,
        sqlite_session_factory: SessionFactory,
        owner_id: uuid.UUID,
        other_owner_id: uuid.UUID,
    ) -> None:
        repo = SqlDocumentRepository(sqlite_session_factory)
        document = await repo.create_document(owner_id, "Private", "secret")

        assert await repo.get_document(other_owner_id, document.document_id) is None
        assert await repo.list_documents(other_owner_id) == []
        assert await repo.get_titles(other_owner_id, [document.document_id]) == {}
        assert await repo.delete_document(other_owner_id, document.document_id) is False
        with pytest.raises(NotFoundError):
            await repo.update_document(
                other_owner_id, document.document_id, status=DocumentStatus.failed
            )

    @pytest.mark.asyncio
    async def test_delete_cascades_to_chunks(
        self, sqlite_session_factory: SessionFactory, owner_id: uuid.UUID
    ) -> None:
        repo = SqlDocumentRepository(sqlite_session_factory)
        index = SqlVectorIndex(sqlite_session_factory)
        document = await repo.create_document(owner_id, "Doc", "text")
        await index.upsert(owner_id, document.document_id, make_chunks(document.document_id, [[1.0, 0.0]]))

        assert await repo.delete_document(owner_id, document.document_id) is True

        assert await index.search(owner_id, [1.0, 0.0], candidate_limit=10) == []


class TestSqlVectorIndex:
    """Test chunk storage and similarity search."""

    @pytest.mark.asyncio
    async def test_upsert_and_search(
        self, sqlite_session_factory: SessionFactory, owner_id: uuid.UUID
    ) -> None:
        repo = SqlDocumentRepository(sqlite_session_factory)
        index = SqlVectorIndex(sqlite_session_factory)
        document = await repo.create_document(owner_id, "Doc", "text")

        await index.upsert(
            owner_id,
            document.document_id,
            make_chunks(document.document_id, [[0.0, 1.0], [1.0, 0.0], [1.0, 1.0]]),
        )
        results = await index.search(owner_id, [1.0, 0.0], candidate_limit=2)

        assert [r.chunk_index for r in results] == [1, 2]
        assert results[0].score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_upsert_replaces_previous_set(
        self, sqlite_session_factory: SessionFactory, owner_id: uuid.UUID
    ) -> None:
        repo = SqlDocumentRepository(sqlite_session_factory)
        index = SqlVectorIndex(sqlite_session_factory)
        document = await repo.create_document(owner_id, "Doc", "text")

        await index.upsert(
            owner_id, document.document_id, make_chunks(document.document_id, [[1.0]] * 4)
        )
        await index.upsert(
            owner_id, document.document_id, make_chunks(document.document_id, [[1.0]] * 2)
        )

        assert len(await index.search(owner_id, [1.0], candidate_limit=10)) == 2

    @pytest.mark.asyncio
    async def test_upsert_for_unowned_document_rejected(
        self,
        sqlite_session_factory: SessionFactory,
        owner_id: uuid.UUID,
        other_owner_id: uuid.UUID,
    ) -> None:
        repo = SqlDocumentRepository(sqlite_session_factory)
        index = SqlVectorIndex(sqlite_session_factory)
        document = await repo.create_document(owner_id, "Doc", "text")
        await index.upsert(
            owner_id, document.document_id, make_chunks(document.document_id, [[1.0]])
        )

        with pytest.raises(NotFoundError):
            await index.upsert(
                other_owner_id, document.document_id, make_chunks(document.document_id, [])
            )

        # Original chunk set untouched (transaction rolled back)
        assert len(await index.search(owner_id, [1.0], candidate_limit=10)) == 1

    @pytest.mark.asyncio
    async def test_search_is_owner_scoped(
        self,
        sqlite_session_factory: SessionFactory,
        owner_id: uuid.UUID,
        other_owner_id: uuid.UUID,
    ) -> None:
        repo = SqlDocumentRepository(sqlite_session_factory)
        index = SqlVectorIndex(sqlite_session_factory)
        mine = await repo.create_document(owner_id, "Mine", "text")
        theirs = await repo.create_document(other_owner_id, "Theirs", "text")
        await index.upsert(owner_id, mine.document_id, make_chunks(mine.document_id, [[1.0, 1.0]]))
        await index.upsert(
            other_owner_id, theirs.document_id, make_chunks(theirs.document_id, [[1.0, 0.0]])
        )

        results = await index.search(owner_id, [1.0, 0.0], candidate_limit=10)

        assert [r.document_id for r in results] == [mine.document_id]

    @pytest.mark.asyncio
    async def test_delete_document_counts_removed(
        self,
        sqlite_session_factory: SessionFactory,
        owner_id: uuid.UUID,
        other_owner_id: uuid.UUID,
    ) -> None:
        repo = SqlDocumentRepository(sqlite_session_factory)
        index = SqlVectorIndex(sqlite_session_factory)
        document = await repo.create_document(owner_id, "Doc", "text")
        await index.upsert(
            owner_id, document.document_id, make_chunks(document.document_id, [[1.0]] * 3)
        )

        assert await index.delete_document(other_owner_id, document.document_id) == 0
        assert await index.delete_document(owner_id, document.document_id) == 3


class TestSqlConversationStore:
    """Test session and message persistence."""

    @pytest.mark.asyncio
    async def test_append_and_recent_order(
        self, sqlite_session_factory: SessionFactory, owner_id: uuid.UUID
    ) -> None:
        store = SqlConversationStore(sqlite_session_factory)
        session_id = await store.get_or_create_session(owner_id, title="Chat")

        for i in range(6):
            await store.append(session_id, Role.user if i % 2 == 0 else Role.assistant, f"m{i}")

        recent = await store.recent(session_id, 4)

        assert [m.content for m in recent] == ["m2", "m3", "m4", "m5"]
        assert [m.role for m in recent] == [Role.user, Role.assistant, Role.user, Role.assistant]

    @pytest.mark.asyncio
    async def test_sources_and_error_flag_roundtrip(
        self, sqlite_session_factory: SessionFactory, owner_id: uuid.UUID
    ) -> None:
        store = SqlConversationStore(sqlite_session_factory)
        session_id = await store.get_or_create_session(owner_id)
        source = Source(
            chunk_id=uuid.uuid4(),
            document_id=uuid.uuid4(),
            document_title="Doc",
            similarity=0.42,
            excerpt="excerpt...",
        )

        await store.append(session_id, Role.assistant, "answer", [source])
        await store.append(session_id, Role.assistant, "sorry", is_error=True)

        messages = await store.list_messages(owner_id, session_id)
        assert messages[0].sources == [source]
        assert messages[0].is_error is False
        assert messages[1].is_error is True

    @pytest.mark.asyncio
    async def test_session_tenancy(
        self,
        sqlite_session_factory: SessionFactory,
        owner_id: uuid.UUID,
        other_owner_id: uuid.UUID,
    ) -> None:
        store = SqlConversationStore(sqlite_session_factory)
        session_id = await store.get_or_create_session(owner_id)

        with pytest.raises(NotFoundError):
            await store.get_or_create_session(other_owner_id, session_id)
        with pytest.raises(NotFoundError):
            await store.list_messages(other_owner_id, session_id)
        assert await store.list_sessions(other_owner_id) == []

    @pytest.mark.asyncio
    async def test_default_title(
        self, sqlite_session_factory: SessionFactory, owner_id: uuid.UUID
    ) -> None:
        store = SqlConversationStore(sqlite_session_factory)
        await store.get_or_create_session(owner_id)

        sessions = await store.list_sessions(owner_id)
        assert sessions[0].title.startswith("Chat ")


@pytest.mark.asyncio
async def test_orchestrator_end_to_end_on_sql(
    sqlite_session_factory: SessionFactory, owner_id: uuid.UUID
) -> None:
    """Test ingest then two queries with history on SQL storage."""
    documents = SqlDocumentRepository(sqlite_session_factory)
    orchestrator = RAGOrchestrator(
        documents=documents,
        index=SqlVectorIndex(sqlite_session_factory),
        conversations=SqlConversationStore(sqlite_session_factory),
        embedder=DeterministicStubEmbeddingClient(dimension=128),
        generator=DeterministicStubClient(),
        chunk_size=120,
        chunk_overlap=20,
    )
    text = (
        "The warranty covers manufacturing defects for two years.\n\n"
        "Accidental damage is not covered by the warranty.\n\n"
        "Shipping is free for orders above fifty dollars."
    )

    document, result = await orchestrator.add_document(owner_id, "Warranty terms", text)
    stored = await documents.get_document(owner_id, document.document_id)
    assert stored is not None
    assert stored.status == DocumentStatus.processed
    assert stored.chunk_count == result.chunk_count > 0

    first = await orchestrator.query(owner_id, "What does the warranty cover?")
    second = await orchestrator.query(owner_id, "How long is it?", first.session_id)

    assert first.sources
    assert first.sources[0].document_title == "Warranty terms"
    messages = await orchestrator.list_messages(owner_id, second.session_id)
    assert [m.role for m in messages] == [Role.user, Role.assistant, Role.user, Role.assistant]
