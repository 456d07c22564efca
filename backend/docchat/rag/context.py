"""Context assembly - build the generative prompt from passages and history."""

from dataclasses import dataclass, field

from backend.docchat.models.conversation import ChatTurn, Message
from backend.docchat.models.docs import RetrievedChunk

SYSTEM_INSTRUCTION = (
    "You are a helpful assistant that answers questions about the user's own documents.\n"
    "Use the context below, when present, to answer the user's question and mention which "
    "document the answer comes from.\n"
    "If the answer cannot be found in the context, say explicitly: \"I don't have enough "
    "information in the provided documents to answer that question.\" You may then add "
    "general knowledge, clearly labelled as such.\n"
    "Do not invent document titles, quotes, or facts that are not in the context."
)

NO_CONTEXT_NOTE = (
    "No passages from the user's documents matched this question. Say so, then answer "
    "from general knowledge if you can."
)

CHUNK_SEPARATOR = "\n\n---\n\n"


@dataclass
class Prompt:
    """Assembled generative model input."""

    system_prompt: str
    history: list[ChatTurn] = field(default_factory=list)
    user_prompt: str = ""
    context_chunks: list[RetrievedChunk] = field(default_factory=list)

    def as_messages(self) -> list[dict[str, str]]:
        """Render as a chat completions message list."""
        messages = [{"role": "system", "content": self.system_prompt}]
        messages.extend({"role": turn.role.value, "content": turn.content} for turn in self.history)
        messages.append({"role": "user", "content": self.user_prompt})
        return messages


class ContextAssembler:
    """Pure, deterministic prompt builder."""

    def __init__(self, *, max_context_chars: int = 12000, max_history_messages: int = 10) -> None:
        self.max_context_chars = max_context_chars
        self.max_history_messages = max_history_messages

    def render_chunk(self, chunk: RetrievedChunk) -> str:
        """Render one passage with its source document title."""
        return f"Document: {chunk.document_title}\nContent: {chunk.text}"

    def _select_context(self, retrieved_chunks: list[RetrievedChunk]) -> list[str]:
        """Keep passages in ranked order while they fit the context budget."""
        rendered: list[str] = []
        used = 0

        for chunk in retrieved_chunks:
            block = self.render_chunk(chunk)
            cost = len(block) + (len(CHUNK_SEPARATOR) if rendered else 0)

            if used + cost > self.max_context_chars:
                if not rendered:
                    # Top-ranked passage is always kept, cut to the budget
                    rendered.append(block[: self.max_context_chars])
                break

            rendered.append(block)
            used += cost

        return rendered

    def assemble(
        self,
        query: str,
        retrieved_chunks: list[RetrievedChunk],
        history: list[Message],
    ) -> Prompt:
        """Build the prompt for one query.

        Args:
            query: Current user question
            retrieved_chunks: Retriever output, in ranked order
            history: Prior session messages, oldest first

        Returns:
            Prompt with system instruction (plus context section when any
            passage was retrieved), chronological history without tagged
            failure answers, and the question
        """
        blocks = self._select_context(retrieved_chunks)

        if blocks:
            system_prompt = f"{SYSTEM_INSTRUCTION}\n\nContext:\n{CHUNK_SEPARATOR.join(blocks)}"
            used_chunks = retrieved_chunks[: len(blocks)]
        else:
            system_prompt = f"{SYSTEM_INSTRUCTION}\n\n{NO_CONTEXT_NOTE}"
            used_chunks = []

        # Tagged failure answers are not conversation content
        usable = [message for message in history if not message.is_error]
        recent = usable[-self.max_history_messages :] if self.max_history_messages > 0 else []
        turns = [ChatTurn(role=message.role, content=message.content) for message in recent]

        return Prompt(
            system_prompt=system_prompt,
            history=turns,
            user_prompt=query,
            context_chunks=used_chunks,
        )
