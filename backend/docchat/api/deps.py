"""Service wiring for the HTTP layer."""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from backend.docchat.config import Settings, get_settings
from backend.docchat.db.engine import (
    create_async_engine_from_settings,
    create_session_factory,
    create_tables,
)
from backend.docchat.db.inmemory import InMemoryConversationStore, InMemoryDocumentRepository
from backend.docchat.db.sql_repositories import (
    SqlConversationStore,
    SqlDocumentRepository,
    SqlVectorIndex,
)
from backend.docchat.llm.client import get_generation_client
from backend.docchat.rag.embeddings import get_embedding_client
from backend.docchat.rag.orchestrator import RAGOrchestrator, create_orchestrator
from backend.docchat.rag.vector_index import InMemoryVectorIndex

logger = logging.getLogger(__name__)

# Global service instances, built on first use
_orchestrator: RAGOrchestrator | None = None
_engine: AsyncEngine | None = None


def build_orchestrator(settings: Settings) -> tuple[RAGOrchestrator, AsyncEngine | None]:
    """Build an orchestrator for the configured storage backend.

    Returns:
        (orchestrator, engine) where engine is None for in-memory storage
    """
    engine: AsyncEngine | None = None

    if settings.storage_backend == "sql":
        engine = create_async_engine_from_settings(settings)
        session_factory = create_session_factory(engine)
        documents = SqlDocumentRepository(session_factory)
        index = SqlVectorIndex(session_factory)
        conversations = SqlConversationStore(session_factory)
    else:
        documents = InMemoryDocumentRepository()
        index = InMemoryVectorIndex()
        conversations = InMemoryConversationStore()

    logger.info(f"Using {settings.storage_backend} storage backend")

    orchestrator = create_orchestrator(
        settings,
        documents=documents,
        index=index,
        conversations=conversations,
        embedder=get_embedding_client(settings),
        generator=get_generation_client(settings),
    )
    return orchestrator, engine


def get_orchestrator() -> RAGOrchestrator:
    """FastAPI dependency for the process-wide orchestrator."""
    global _orchestrator, _engine
    if _orchestrator is None:
        _orchestrator, _engine = build_orchestrator(get_settings())
    return _orchestrator


async def startup() -> None:
    """Build services, creating SQL tables only when configured to."""
    get_orchestrator()
    if _engine is not None and get_settings().create_tables_on_startup:
        await create_tables(_engine)


async def shutdown() -> None:
    """Dispose the engine and drop service instances."""
    global _orchestrator, _engine
    if _engine is not None:
        await _engine.dispose()
    _orchestrator = None
    _engine = None
