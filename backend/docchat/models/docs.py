"""Document domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class DocumentStatus(str, Enum):
    """Document processing status."""

    pending = "pending"
    processed = "processed"
    failed = "failed"


class Document(BaseModel):
    """User document with its extracted text."""

    document_id: UUID
    owner_id: UUID
    title: str
    text: str
    mime_type: str = "text/plain"
    status: DocumentStatus = DocumentStatus.pending
    chunk_count: int = 0
    uploaded_at: datetime


class ChunkDraft(BaseModel):
    """Chunk text before embedding."""

    chunk_id: UUID
    document_id: UUID
    chunk_index: int  # 0-based, contiguous
    text: str
    token_count: int


class IndexedChunk(BaseModel):
    """Chunk with its embedding, as handed to the vector index."""

    chunk_id: UUID
    document_id: UUID
    chunk_index: int
    text: str
    token_count: int
    embedding: list[float] = Field(repr=False)


class ScoredChunk(BaseModel):
    """Vector index search candidate."""

    chunk_id: UUID
    document_id: UUID
    chunk_index: int
    text: str
    score: float


class RetrievedChunk(BaseModel):
    """Retriever output: a ranked candidate with its document title."""

    chunk_id: UUID
    document_id: UUID
    document_title: str
    chunk_index: int
    text: str
    score: float
