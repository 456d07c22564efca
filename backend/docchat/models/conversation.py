"""Conversation domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

EXCERPT_CHARS = 200


class Role(str, Enum):
    """Message author role."""

    user = "user"
    assistant = "assistant"


class Source(BaseModel):
    """Citation attached to an assistant message."""

    chunk_id: UUID
    document_id: UUID
    document_title: str
    similarity: float = Field(ge=0.0, le=1.0)
    excerpt: str


class ConversationSession(BaseModel):
    """Chat session owned by one user."""

    session_id: UUID
    owner_id: UUID
    title: str
    created_at: datetime
    updated_at: datetime


class Message(BaseModel):
    """Single message in a session."""

    message_id: UUID
    session_id: UUID
    role: Role
    content: str
    sources: list[Source] = Field(default_factory=list)
    is_error: bool = False
    created_at: datetime


class ChatTurn(BaseModel):
    """Role/content pair as sent to the generative model."""

    role: Role
    content: str


def make_excerpt(text: str, limit: int = EXCERPT_CHARS) -> str:
    """Shorten chunk text for display, marking truncation with '...'."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
