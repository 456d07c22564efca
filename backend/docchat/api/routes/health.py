"""Health check endpoints."""

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from backend.docchat.api.deps import get_orchestrator
from backend.docchat.config import get_settings
from backend.docchat.rag.orchestrator import RAGOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)

# Owner that never holds data
_PROBE_OWNER_ID = uuid.UUID(int=0)


async def check_storage(orchestrator: RAGOrchestrator) -> tuple[bool, str]:
    """Check storage reachability with a cheap owner-scoped read.

    Returns:
        (is_ok, status_message)
    """
    try:
        await orchestrator.documents.list_documents(_PROBE_OWNER_ID)
        await orchestrator.conversations.list_sessions(_PROBE_OWNER_ID)
        return (True, "ok")
    except Exception as e:
        logger.warning(f"Storage health check failed: {e!r}")
        return (False, f"error: {type(e).__name__}")


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple health check for Docker/k8s.

    Returns:
        200 OK always (application is running)
    """
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz(
    orchestrator: RAGOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any] | Response:
    """Component health check.

    Returns:
        200 with component status if storage is reachable, 503 otherwise
    """
    settings = get_settings()
    storage_ok, storage_status = await check_storage(orchestrator)
    api_key = settings.openai_api_key

    response_body = {
        "status": "ok" if storage_ok else "degraded",
        "components": {
            "storage": f"{settings.storage_backend}: {storage_status}",
            "providers": "openai" if api_key and api_key.get_secret_value() else "stub",
        },
    }

    if not storage_ok:
        return JSONResponse(content=response_body, status_code=503)

    return response_body
