"""Repository protocol interfaces for data access.

Every method is owner-scoped: a record owned by someone else behaves
exactly like a missing record.
"""

from typing import Protocol
from uuid import UUID

from backend.docchat.models.conversation import ConversationSession, Message, Role, Source
from backend.docchat.models.docs import Document, DocumentStatus


class DocumentRepository(Protocol):
    """Repository for document records."""

    async def create_document(
        self, owner_id: UUID, title: str, text: str, *, mime_type: str = "text/plain"
    ) -> Document:
        """Create a pending document.

        Args:
            owner_id: Owner of the new document
            title: Display title
            text: Extracted text
            mime_type: MIME type the text was extracted from

        Returns:
            Created document with status pending
        """
        ...

    async def get_document(self, owner_id: UUID, document_id: UUID) -> Document | None:
        """Get document by ID.

        Returns:
            Document or None if not found
        """
        ...

    async def list_documents(self, owner_id: UUID) -> list[Document]:
        """List the owner's documents, newest first."""
        ...

    async def update_document(
        self,
        owner_id: UUID,
        document_id: UUID,
        *,
        status: DocumentStatus,
        chunk_count: int | None = None,
        text: str | None = None,
    ) -> None:
        """Update processing status (and optionally chunk count / text).

        Raises:
            NotFoundError: If the document is not found
        """
        ...

    async def delete_document(self, owner_id: UUID, document_id: UUID) -> bool:
        """Delete a document.

        Returns:
            True if a document was deleted
        """
        ...

    async def get_titles(self, owner_id: UUID, document_ids: list[UUID]) -> dict[UUID, str]:
        """Resolve titles for the owner's documents; unknown ids are omitted."""
        ...


class ConversationStore(Protocol):
    """Append-only ordered message history per session."""

    async def get_or_create_session(
        self, owner_id: UUID, session_id: UUID | None = None, title: str | None = None
    ) -> UUID:
        """Resolve a session for the owner.

        Args:
            owner_id: Caller
            session_id: Existing session, or None to create one
            title: Title for a newly created session

        Returns:
            Session ID

        Raises:
            NotFoundError: If session_id is given but not owned by the caller
        """
        ...

    async def append(
        self,
        session_id: UUID,
        role: Role,
        content: str,
        sources: list[Source] | None = None,
        *,
        is_error: bool = False,
    ) -> Message:
        """Append a message and bump the session's updated_at.

        Raises:
            NotFoundError: If the session does not exist
        """
        ...

    async def recent(self, session_id: UUID, limit: int) -> list[Message]:
        """Return the last `limit` messages, oldest first."""
        ...

    async def list_sessions(self, owner_id: UUID) -> list[ConversationSession]:
        """List the owner's sessions, most recently updated first."""
        ...

    async def list_messages(self, owner_id: UUID, session_id: UUID) -> list[Message]:
        """Return all messages of an owned session, oldest first.

        Raises:
            NotFoundError: If the session is not owned by the caller
        """
        ...
