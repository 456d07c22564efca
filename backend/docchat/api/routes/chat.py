"""Chat endpoints - POST /chat/query, GET /chat/sessions, GET /chat/sessions/{id}/messages."""

import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backend.docchat.api.auth import get_current_context
from backend.docchat.api.deps import get_orchestrator
from backend.docchat.db.context import RequestContext
from backend.docchat.models.conversation import Role, Source
from backend.docchat.rag.orchestrator import RAGOrchestrator

router = APIRouter(prefix="/chat", tags=["chat"])


class QueryRequest(BaseModel):
    """Request body for POST /chat/query."""

    question: str = Field(..., min_length=1, max_length=4000, description="User question")
    session_id: uuid.UUID | None = Field(None, description="Existing session to continue")
    session_title: str | None = Field(
        None, max_length=200, description="Title for a newly created session"
    )


class QueryResponse(BaseModel):
    """Response for POST /chat/query."""

    answer: str
    session_id: uuid.UUID
    sources: list[Source]
    is_error: bool


class SessionSummary(BaseModel):
    """Single session in GET /chat/sessions."""

    session_id: uuid.UUID
    title: str
    updated_at: datetime


class SessionListResponse(BaseModel):
    """Response for GET /chat/sessions."""

    sessions: list[SessionSummary]


class MessageResponse(BaseModel):
    """Single message in GET /chat/sessions/{session_id}/messages."""

    message_id: uuid.UUID
    role: Role
    content: str
    sources: list[Source]
    is_error: bool
    created_at: datetime


class MessageListResponse(BaseModel):
    """Response for GET /chat/sessions/{session_id}/messages."""

    session_id: uuid.UUID
    messages: list[MessageResponse]


@router.post("/query", response_model=QueryResponse)
async def query(
    request: QueryRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    orchestrator: Annotated[RAGOrchestrator, Depends(get_orchestrator)],
) -> QueryResponse:
    """Answer a question from the caller's documents.

    Provider failures still return 200 with is_error=true and an apologetic
    answer; the exchange is kept in the session history.

    Args:
        request: Question and optional session
        ctx: Request context (owner_id)
        orchestrator: RAG orchestrator

    Returns:
        Answer, session id and cited sources
    """
    result = await orchestrator.query(
        ctx.owner_id,
        request.question,
        request.session_id,
        title=request.session_title,
    )

    return QueryResponse(
        answer=result.answer,
        session_id=result.session_id,
        sources=result.sources,
        is_error=result.is_error,
    )


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    orchestrator: Annotated[RAGOrchestrator, Depends(get_orchestrator)],
) -> SessionListResponse:
    """List the caller's sessions, most recently active first."""
    sessions = await orchestrator.list_sessions(ctx.owner_id)
    return SessionListResponse(
        sessions=[
            SessionSummary(session_id=s.session_id, title=s.title, updated_at=s.updated_at)
            for s in sessions
        ]
    )


@router.get("/sessions/{session_id}/messages", response_model=MessageListResponse)
async def list_messages(
    session_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    orchestrator: Annotated[RAGOrchestrator, Depends(get_orchestrator)],
) -> MessageListResponse:
    """Return a session's messages in chronological order."""
    messages = await orchestrator.list_messages(ctx.owner_id, session_id)
    return MessageListResponse(
        session_id=session_id,
        messages=[
            MessageResponse(
                message_id=m.message_id,
                role=m.role,
                content=m.content,
                sources=m.sources,
                is_error=m.is_error,
                created_at=m.created_at,
            )
            for m in messages
        ],
    )
