"""In-memory implementations of repository interfaces."""

import uuid
from datetime import datetime, timezone

from backend.docchat.errors import NotFoundError
from backend.docchat.models.conversation import ConversationSession, Message, Role, Source
from backend.docchat.models.docs import Document, DocumentStatus


def default_session_title(now: datetime) -> str:
    """Title for sessions created without one."""
    return f"Chat {now.date().isoformat()}"


class InMemoryDocumentRepository:
    """In-memory implementation of DocumentRepository."""

    def __init__(self) -> None:
        self._documents: dict[uuid.UUID, Document] = {}

    async def create_document(
        self, owner_id: uuid.UUID, title: str, text: str, *, mime_type: str = "text/plain"
    ) -> Document:
        """Create a pending document."""
        document = Document(
            document_id=uuid.uuid4(),
            owner_id=owner_id,
            title=title,
            text=text,
            mime_type=mime_type,
            status=DocumentStatus.pending,
            uploaded_at=datetime.now(timezone.utc),
        )
        self._documents[document.document_id] = document
        return document

    async def get_document(self, owner_id: uuid.UUID, document_id: uuid.UUID) -> Document | None:
        """Get document by ID."""
        document = self._documents.get(document_id)

        # Enforce tenancy
        if document is None or document.owner_id != owner_id:
            return None

        return document

    async def list_documents(self, owner_id: uuid.UUID) -> list[Document]:
        """List the owner's documents, newest first."""
        results = [d for d in self._documents.values() if d.owner_id == owner_id]
        results.sort(key=lambda d: d.uploaded_at, reverse=True)
        return results

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
        document = await self.get_document(owner_id, document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")

        updates: dict[str, object] = {"status": status}
        if chunk_count is not None:
            updates["chunk_count"] = chunk_count
        if text is not None:
            updates["text"] = text

        self._documents[document_id] = document.model_copy(update=updates)

    async def delete_document(self, owner_id: uuid.UUID, document_id: uuid.UUID) -> bool:
        """Delete a document."""
        if await self.get_document(owner_id, document_id) is None:
            return False
        del self._documents[document_id]
        return True

    async def get_titles(
        self, owner_id: uuid.UUID, document_ids: list[uuid.UUID]
    ) -> dict[uuid.UUID, str]:
        """Resolve titles for the owner's documents."""
        titles: dict[uuid.UUID, str] = {}
        for document_id in document_ids:
            document = await self.get_document(owner_id, document_id)
            if document is not None:
                titles[document_id] = document.title
        return titles


class InMemoryConversationStore:
    """In-memory implementation of ConversationStore."""

    def __init__(self) -> None:
        self._sessions: dict[uuid.UUID, ConversationSession] = {}
        self._messages: dict[uuid.UUID, list[Message]] = {}

    async def get_or_create_session(
        self,
        owner_id: uuid.UUID,
        session_id: uuid.UUID | None = None,
        title: str | None = None,
    ) -> uuid.UUID:
        """Resolve or lazily create a session."""
        if session_id is not None:
            session = self._sessions.get(session_id)

            # Enforce tenancy
            if session is None or session.owner_id != owner_id:
                raise NotFoundError(f"Session {session_id} not found")

            return session_id

        now = datetime.now(timezone.utc)
        session = ConversationSession(
            session_id=uuid.uuid4(),
            owner_id=owner_id,
            title=title or default_session_title(now),
            created_at=now,
            updated_at=now,
        )
        self._sessions[session.session_id] = session
        self._messages[session.session_id] = []
        return session.session_id

    async def append(
        self,
        session_id: uuid.UUID,
        role: Role,
        content: str,
        sources: list[Source] | None = None,
        *,
        is_error: bool = False,
    ) -> Message:
        """Append a message to the session."""
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")

        now = datetime.now(timezone.utc)
        message = Message(
            message_id=uuid.uuid4(),
            session_id=session_id,
            role=role,
            content=content,
            sources=list(sources or []),
            is_error=is_error,
            created_at=now,
        )

        self._messages[session_id].append(message)
        self._sessions[session_id] = session.model_copy(update={"updated_at": now})
        return message

    async def recent(self, session_id: uuid.UUID, limit: int) -> list[Message]:
        """Return the last `limit` messages, oldest first."""
        if limit <= 0:
            return []
        return list(self._messages.get(session_id, [])[-limit:])

    async def list_sessions(self, owner_id: uuid.UUID) -> list[ConversationSession]:
        """List the owner's sessions, most recently updated first."""
        results = [s for s in self._sessions.values() if s.owner_id == owner_id]
        results.sort(key=lambda s: s.updated_at, reverse=True)
        return results

    async def list_messages(self, owner_id: uuid.UUID, session_id: uuid.UUID) -> list[Message]:
        """Return all messages of an owned session, oldest first."""
        session = self._sessions.get(session_id)

        # Enforce tenancy
        if session is None or session.owner_id != owner_id:
            raise NotFoundError(f"Session {session_id} not found")

        return list(self._messages[session_id])
