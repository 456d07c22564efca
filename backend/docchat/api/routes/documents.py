"""Document endpoints - create, upload, ingest, list and delete."""

import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, Field, field_validator

from backend.docchat.api.auth import get_current_context
from backend.docchat.api.deps import get_orchestrator
from backend.docchat.db.context import RequestContext
from backend.docchat.extraction import extract_text
from backend.docchat.models.docs import Document, DocumentStatus
from backend.docchat.rag.orchestrator import RAGOrchestrator

router = APIRouter(prefix="/documents", tags=["documents"])


class CreateDocumentRequest(BaseModel):
    """Request body for POST /documents."""

    title: str = Field(..., min_length=1, max_length=200, description="Document title")
    text: str = Field(..., min_length=1, description="Extracted document text")
    mime_type: str = Field("text/plain", description="Content type of the source file")

    @field_validator("text")
    @classmethod
    def validate_text_not_blank(cls, v: str) -> str:
        """Reject text with no visible content."""
        if not v.strip():
            raise ValueError("text must contain non-whitespace content")
        return v


class DocumentResponse(BaseModel):
    """Document metadata returned by the API."""

    document_id: uuid.UUID
    title: str
    mime_type: str
    status: DocumentStatus
    chunk_count: int
    uploaded_at: datetime

    @classmethod
    def from_document(cls, document: Document) -> "DocumentResponse":
        return cls(
            document_id=document.document_id,
            title=document.title,
            mime_type=document.mime_type,
            status=document.status,
            chunk_count=document.chunk_count,
            uploaded_at=document.uploaded_at,
        )


class IngestRequest(BaseModel):
    """Request body for POST /documents/{document_id}/ingest."""

    text: str = Field(..., min_length=1, description="Full replacement text")


class IngestResponse(BaseModel):
    """Response for POST /documents/{document_id}/ingest."""

    document_id: uuid.UUID
    chunk_count: int


class DocumentListResponse(BaseModel):
    """Response for GET /documents."""

    documents: list[DocumentResponse]


async def _add_and_describe(
    orchestrator: RAGOrchestrator,
    ctx: RequestContext,
    title: str,
    text: str,
    mime_type: str,
) -> DocumentResponse:
    document, _ = await orchestrator.add_document(
        ctx.owner_id, title, text, mime_type=mime_type
    )
    # Re-read to report the post-ingest status
    stored = await orchestrator.documents.get_document(ctx.owner_id, document.document_id)
    return DocumentResponse.from_document(stored or document)


@router.post("", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def create_document(
    request: CreateDocumentRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    orchestrator: Annotated[RAGOrchestrator, Depends(get_orchestrator)],
) -> DocumentResponse:
    """Create a document from extracted text and ingest it.

    Args:
        request: Document creation request
        ctx: Request context (owner_id)
        orchestrator: RAG orchestrator

    Returns:
        Created document metadata with chunk count
    """
    return await _add_and_describe(
        orchestrator, ctx, request.title, request.text, request.mime_type
    )


@router.post("/upload", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    http_request: Request,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    orchestrator: Annotated[RAGOrchestrator, Depends(get_orchestrator)],
    title: Annotated[str, Query(min_length=1, max_length=200)],
    content_type: Annotated[str, Header()] = "text/plain",
) -> DocumentResponse:
    """Create a document from a raw file body.

    The file type comes from the Content-Type header. Unsupported types are
    rejected with 415. A file with no extractable text is rejected with 400.
    """
    body = await http_request.body()
    text = extract_text(body, content_type)
    if not text.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No text content found in file",
        )
    return await _add_and_describe(orchestrator, ctx, title, text, content_type)


@router.post("/{document_id}/ingest", response_model=IngestResponse)
async def ingest_document(
    document_id: uuid.UUID,
    request: IngestRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    orchestrator: Annotated[RAGOrchestrator, Depends(get_orchestrator)],
) -> IngestResponse:
    """Re-ingest an existing document with new text."""
    result = await orchestrator.ingest(ctx.owner_id, document_id, request.text)
    return IngestResponse(document_id=result.document_id, chunk_count=result.chunk_count)


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    orchestrator: Annotated[RAGOrchestrator, Depends(get_orchestrator)],
) -> DocumentListResponse:
    """List the caller's documents, newest first."""
    documents = await orchestrator.list_documents(ctx.owner_id)
    return DocumentListResponse(
        documents=[DocumentResponse.from_document(d) for d in documents]
    )


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    orchestrator: Annotated[RAGOrchestrator, Depends(get_orchestrator)],
) -> Response:
    """Delete a document and its chunks."""
    await orchestrator.delete_document(ctx.owner_id, document_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
