"""Orchestrator result models for ingest and query operations."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from backend.docchat.models.conversation import Source


class QueryStage(str, Enum):
    """Lifecycle stages of a single query."""

    received = "received"
    embedding = "embedding"
    retrieving = "retrieving"
    assembling = "assembling"
    generating = "generating"
    persisted = "persisted"
    failed = "failed"


class IngestResult(BaseModel):
    """Outcome of ingesting one document."""

    document_id: UUID
    chunk_count: int


class QueryResult(BaseModel):
    """Answer returned to the caller of a query.

    `is_error` marks an apologetic answer produced because a provider failed;
    `error` then carries the error type name and `stages` ends with `failed`.
    """

    answer: str
    session_id: UUID
    sources: list[Source] = Field(default_factory=list)
    stages: list[QueryStage] = Field(default_factory=list)
    is_error: bool = False
    error: str | None = None
