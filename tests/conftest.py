"""Shared pytest fixtures for all test suites."""

import uuid
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from backend.docchat.db.inmemory import InMemoryConversationStore, InMemoryDocumentRepository
from backend.docchat.db.models import Base
from backend.docchat.errors import EmbeddingProviderError, GenerationProviderError
from backend.docchat.llm.client import DeterministicStubClient
from backend.docchat.models.conversation import ChatTurn
from backend.docchat.rag.embeddings import DeterministicStubEmbeddingClient
from backend.docchat.rag.orchestrator import RAGOrchestrator
from backend.docchat.rag.vector_index import InMemoryVectorIndex

OWNER_A = uuid.UUID("00000000-0000-0000-0000-00000000000a")
OWNER_B = uuid.UUID("00000000-0000-0000-0000-00000000000b")


class RecordingGenerator:
    """Stub generator that records every prompt and can be told to fail."""

    def __init__(self) -> None:
        self.calls: list[dict[str, object]] = []
        self.fail_with: GenerationProviderError | None = None
        self._stub = DeterministicStubClient()

    async def complete(
        self, *, system_prompt: str, history: list[ChatTurn], user_prompt: str
    ) -> str:
        self.calls.append(
            {"system_prompt": system_prompt, "history": list(history), "user_prompt": user_prompt}
        )
        if self.fail_with is not None:
            raise self.fail_with
        return await self._stub.complete(
            system_prompt=system_prompt, history=history, user_prompt=user_prompt
        )


class ControllableEmbedder:
    """Stub embedder with call counting and injectable failures."""

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension
        self.calls: list[list[str]] = []
        self.fail_with: EmbeddingProviderError | None = None
        self._stub = DeterministicStubEmbeddingClient(dimension=dimension)

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_with is not None:
            raise self.fail_with
        return await self._stub.embed(texts)


@pytest.fixture
def owner_id() -> uuid.UUID:
    return OWNER_A


@pytest.fixture
def other_owner_id() -> uuid.UUID:
    return OWNER_B


@pytest.fixture
def documents() -> InMemoryDocumentRepository:
    return InMemoryDocumentRepository()


@pytest.fixture
def index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()


@pytest.fixture
def conversations() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def embedder() -> ControllableEmbedder:
    return ControllableEmbedder()


@pytest.fixture
def generator() -> RecordingGenerator:
    return RecordingGenerator()


@pytest.fixture
def orchestrator(
    documents: InMemoryDocumentRepository,
    index: InMemoryVectorIndex,
    conversations: InMemoryConversationStore,
    embedder: ControllableEmbedder,
    generator: RecordingGenerator,
) -> RAGOrchestrator:
    """Orchestrator on in-memory storage with small chunks for fast tests."""
    return RAGOrchestrator(
        documents=documents,
        index=index,
        conversations=conversations,
        embedder=embedder,
        generator=generator,
        chunk_size=200,
        chunk_overlap=40,
    )


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed sqlite engine with all tables created.

    A file is used instead of :memory: so every pooled connection sees the
    same database.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'docchat.db'}",
        poolclass=NullPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def sqlite_session_factory(sqlite_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=sqlite_engine, expire_on_commit=False)
