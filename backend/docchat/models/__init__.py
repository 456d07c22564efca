"""Models package - re-exports for convenience."""

from backend.docchat.models.answer import IngestResult, QueryResult, QueryStage
from backend.docchat.models.conversation import (
    ChatTurn,
    ConversationSession,
    Message,
    Role,
    Source,
    make_excerpt,
)
from backend.docchat.models.docs import (
    ChunkDraft,
    Document,
    DocumentStatus,
    IndexedChunk,
    RetrievedChunk,
    ScoredChunk,
)
