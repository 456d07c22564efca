"""SQL implementations of repository and vector index interfaces."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.docchat.db.inmemory import default_session_title
from backend.docchat.db.models import ChatMessage, ChatSession
from backend.docchat.db.models import Document as DocumentDB
from backend.docchat.db.models import DocumentChunk as DocumentChunkDB
from backend.docchat.errors import NotFoundError
from backend.docchat.models.conversation import ConversationSession, Message, Role, Source
from backend.docchat.models.docs import Document, DocumentStatus, IndexedChunk, ScoredChunk
from backend.docchat.rag.vector_index import cosine_similarity, rank_candidates


def _to_document(row: DocumentDB) -> Document:
    return Document(
        document_id=row.document_id,
        owner_id=row.owner_id,
        title=row.title,
        text=row.text,
        mime_type=row.mime_type,
        status=DocumentStatus(row.status),
        chunk_count=row.chunk_count,
        uploaded_at=row.uploaded_at,
    )


def _to_message(row: ChatMessage) -> Message:
    return Message(
        message_id=row.message_id,
        session_id=row.session_id,
        role=Role(row.role),
        content=row.content,
        sources=[Source.model_validate(s) for s in row.sources or []],
        is_error=row.is_error,
        created_at=row.created_at,
    )


class SqlDocumentRepository:
    """SQL implementation of DocumentRepository."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_document(
        self, owner_id: uuid.UUID, title: str, text: str, *, mime_type: str = "text/plain"
    ) -> Document:
        """Create a pending document."""
        row = DocumentDB(
            document_id=uuid.uuid4(),
            owner_id=owner_id,
            title=title,
            text=text,
            mime_type=mime_type,
            status=DocumentStatus.pending.value,
            chunk_count=0,
            uploaded_at=datetime.now(timezone.utc),
        )

        async with self._session_factory() as session:
            session.add(row)
            await session.commit()

        return _to_document(row)

    async def _get_row(
        self, session: AsyncSession, owner_id: uuid.UUID, document_id: uuid.UUID
    ) -> DocumentDB | None:
        result = await session.execute(
            select(DocumentDB).where(
                DocumentDB.document_id == document_id,
                DocumentDB.owner_id == owner_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_document(self, owner_id: uuid.UUID, document_id: uuid.UUID) -> Document | None:
        """Get document by ID."""
        async with self._session_factory() as session:
            row = await self._get_row(session, owner_id, document_id)
            return _to_document(row) if row else None

    async def list_documents(self, owner_id: uuid.UUID) -> list[Document]:
        """List the owner's documents, newest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(DocumentDB)
                .where(DocumentDB.owner_id == owner_id)
                .order_by(DocumentDB.uploaded_at.desc())
            )
            return [_to_document(row) for row in result.scalars().all()]

    async def update_document(
        self,
        owner_id: uuid.UUID,
        document_id: uuid.UUID,
        *,
        status: DocumentStatus,
        chunk_count: int | None = None,
        text: str | None = None,
    ) -> None:
        """Update processing status."""
        async with self._session_factory() as session:
            row = await self._get_row(session, owner_id, document_id)
            if row is None:
                raise NotFoundError(f"Document {document_id} not found")

            row.status = status.value
            if chunk_count is not None:
                row.chunk_count = chunk_count
            if text is not None:
                row.text = text

            await session.commit()

    async def delete_document(self, owner_id: uuid.UUID, document_id: uuid.UUID) -> bool:
        """Delete a document and its chunks in one transaction."""
        async with self._session_factory() as session:
            row = await self._get_row(session, owner_id, document_id)
            if row is None:
                return False

            # Explicit chunk delete: sqlite does not enforce ON DELETE CASCADE by default
            await session.execute(
                delete(DocumentChunkDB).where(DocumentChunkDB.document_id == document_id)
            )
            await session.delete(row)
            await session.commit()
            return True

    async def get_titles(
        self, owner_id: uuid.UUID, document_ids: list[uuid.UUID]
    ) -> dict[uuid.UUID, str]:
        """Resolve titles for the owner's documents."""
        if not document_ids:
            return {}

        async with self._session_factory() as session:
            result = await session.execute(
                select(DocumentDB.document_id, DocumentDB.title).where(
                    DocumentDB.owner_id == owner_id,
                    DocumentDB.document_id.in_(document_ids),
                )
            )
            return {document_id: title for document_id, title in result.all()}


class SqlVectorIndex:
    """SQL implementation of VectorIndex.

    Embeddings live in a JSON column; similarity is computed in application
    code by scanning the owner's chunks.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def upsert(
        self, owner_id: uuid.UUID, document_id: uuid.UUID, chunks: list[IndexedChunk]
    ) -> None:
        """Replace a document's chunks in a single transaction."""
        async with self._session_factory() as session:
            async with session.begin():
                owned = await session.execute(
                    select(DocumentDB.document_id).where(
                        DocumentDB.document_id == document_id,
                        DocumentDB.owner_id == owner_id,
                    )
                )
                if owned.scalar_one_or_none() is None:
                    raise NotFoundError(f"Document {document_id} not found")

                await session.execute(
                    delete(DocumentChunkDB).where(DocumentChunkDB.document_id == document_id)
                )
                session.add_all(
                    DocumentChunkDB(
                        chunk_id=chunk.chunk_id,
                        document_id=document_id,
                        chunk_index=chunk.chunk_index,
                        text=chunk.text,
                        token_count=chunk.token_count,
                        embedding=chunk.embedding,
                    )
                    for chunk in chunks
                )

    async def search(
        self, owner_id: uuid.UUID, query_vector: list[float], candidate_limit: int
    ) -> list[ScoredChunk]:
        """Scan every chunk of the owner."""
        if candidate_limit <= 0:
            return []

        # Fetch all chunks for this owner (enforce tenancy at DB level)
        stmt = (
            select(DocumentChunkDB)
            .join(DocumentChunkDB.document)
            .where(DocumentDB.owner_id == owner_id)
        )

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = list(result.scalars().all())

        candidates = [
            ScoredChunk(
                chunk_id=row.chunk_id,
                document_id=row.document_id,
                chunk_index=row.chunk_index,
                text=row.text,
                score=cosine_similarity(query_vector, row.embedding),
            )
            for row in rows
        ]
        return rank_candidates(candidates, candidate_limit)

    async def delete_document(self, owner_id: uuid.UUID, document_id: uuid.UUID) -> int:
        """Remove a document's chunks."""
        owned_ids = select(DocumentDB.document_id).where(
            DocumentDB.document_id == document_id,
            DocumentDB.owner_id == owner_id,
        )

        async with self._session_factory() as session:
            result = await session.execute(
                delete(DocumentChunkDB).where(DocumentChunkDB.document_id.in_(owned_ids))
            )
            await session.commit()
            return result.rowcount or 0


class SqlConversationStore:
    """SQL implementation of ConversationStore."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_or_create_session(
        self,
        owner_id: uuid.UUID,
        session_id: uuid.UUID | None = None,
        title: str | None = None,
    ) -> uuid.UUID:
        """Resolve or lazily create a session."""
        async with self._session_factory() as session:
            if session_id is not None:
                result = await session.execute(
                    select(ChatSession.session_id).where(
                        ChatSession.session_id == session_id,
                        ChatSession.owner_id == owner_id,
                    )
                )
                if result.scalar_one_or_none() is None:
                    raise NotFoundError(f"Session {session_id} not found")
                return session_id

            now = datetime.now(timezone.utc)
            row = ChatSession(
                session_id=uuid.uuid4(),
                owner_id=owner_id,
                title=title or default_session_title(now),
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            await session.commit()
            return row.session_id

    async def append(
        self,
        session_id: uuid.UUID,
        role: Role,
        content: str,
        sources: list[Source] | None = None,
        *,
        is_error: bool = False,
    ) -> Message:
        """Append a message with the next per-session sequence number."""
        async with self._session_factory() as session:
            chat = await session.get(ChatSession, session_id)
            if chat is None:
                raise NotFoundError(f"Session {session_id} not found")

            result = await session.execute(
                select(func.max(ChatMessage.sequence)).where(ChatMessage.session_id == session_id)
            )
            last_sequence = result.scalar_one_or_none()

            now = datetime.now(timezone.utc)
            row = ChatMessage(
                message_id=uuid.uuid4(),
                session_id=session_id,
                sequence=(last_sequence or 0) + 1,
                role=role.value,
                content=content,
                sources=[s.model_dump(mode="json") for s in sources or []],
                is_error=is_error,
                created_at=now,
            )
            session.add(row)
            chat.updated_at = now
            await session.commit()

            return _to_message(row)

    async def recent(self, session_id: uuid.UUID, limit: int) -> list[Message]:
        """Return the last `limit` messages, oldest first."""
        if limit <= 0:
            return []

        async with self._session_factory() as session:
            result = await session.execute(
                select(ChatMessage)
                .where(ChatMessage.session_id == session_id)
                .order_by(ChatMessage.sequence.desc())
                .limit(limit)
            )
            newest_first = list(result.scalars().all())

        return [_to_message(row) for row in reversed(newest_first)]

    async def list_sessions(self, owner_id: uuid.UUID) -> list[ConversationSession]:
        """List the owner's sessions, most recently updated first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(ChatSession)
                .where(ChatSession.owner_id == owner_id)
                .order_by(ChatSession.updated_at.desc())
            )
            return [
                ConversationSession(
                    session_id=row.session_id,
                    owner_id=row.owner_id,
                    title=row.title,
                    created_at=row.created_at,
                    updated_at=row.updated_at,
                )
                for row in result.scalars().all()
            ]

    async def list_messages(self, owner_id: uuid.UUID, session_id: uuid.UUID) -> list[Message]:
        """Return all messages of an owned session, oldest first."""
        async with self._session_factory() as session:
            owned = await session.execute(
                select(ChatSession.session_id).where(
                    ChatSession.session_id == session_id,
                    ChatSession.owner_id == owner_id,
                )
            )
            if owned.scalar_one_or_none() is None:
                raise NotFoundError(f"Session {session_id} not found")

            result = await session.execute(
                select(ChatMessage)
                .where(ChatMessage.session_id == session_id)
                .order_by(ChatMessage.sequence.asc())
            )
            return [_to_message(row) for row in result.scalars().all()]
