"""Embedding clients: text to fixed-length vectors.

Security: the OpenAI key is read from settings only, never hardcoded.
A deterministic hashing client is used when no key is configured.
"""

import hashlib
import logging
import re
from typing import Protocol

import numpy as np
import openai
from openai import AsyncOpenAI

from backend.docchat.config import Settings
from backend.docchat.errors import EmbeddingProviderError
from backend.docchat.providers.executor import (
    ProviderCallConfig,
    ProviderCallContext,
    ProviderCallExecutor,
)
from backend.docchat.providers.openai_errors import is_transient_openai_error

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9]+")


class EmbeddingClient(Protocol):
    """Protocol for embedding client implementations."""

    dimension: int

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in one batch.

        Args:
            texts: Texts to embed

        Returns:
            One vector of length `dimension` per input text, in input order

        Raises:
            EmbeddingProviderError: On transport, auth or response failures
        """
        ...


def fit_dimension(vector: list[float], dimension: int) -> list[float]:
    """Zero-pad or truncate a vector to the index dimension."""
    if len(vector) == dimension:
        return vector

    logger.warning(
        f"Unexpected embedding length {len(vector)}, expected {dimension}; "
        f"{'padding' if len(vector) < dimension else 'truncating'}"
    )
    if len(vector) < dimension:
        return vector + [0.0] * (dimension - len(vector))
    return vector[:dimension]


class DeterministicStubEmbeddingClient:
    """Hashed bag-of-words embeddings (no API key required).

    Texts sharing words get positive cosine similarity; texts with disjoint
    vocabularies score near zero.
    """

    def __init__(self, dimension: int = 1536) -> None:
        self.dimension = dimension

    def _embed_one(self, text: str) -> list[float]:
        vector = np.zeros(self.dimension, dtype=np.float64)
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "big") % self.dimension] += 1.0
        return vector.tolist()

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate deterministic embeddings."""
        return [self._embed_one(text) for text in texts]


class OpenAIEmbeddingClient:
    """OpenAI-backed embedding client."""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimension: int = 1536,
        client: AsyncOpenAI | None = None,
    ):
        """Initialize OpenAI embedding client.

        Args:
            api_key: OpenAI API key (read from environment)
            model: Embedding model name
            dimension: Vector length expected by the index
            client: Preconfigured SDK client (tests)
        """
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model
        self.dimension = dimension

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed texts with a single batched API call."""
        if not texts:
            return []

        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=[text.replace("\n", " ") for text in texts],
            )
        except openai.OpenAIError as e:
            transient = is_transient_openai_error(e)
            logger.error(f"OpenAI embeddings call failed (transient={transient}): {e}")
            raise EmbeddingProviderError(
                f"Embedding request failed: {type(e).__name__}", transient=transient
            ) from e

        if len(response.data) != len(texts):
            raise EmbeddingProviderError(
                f"Embedding response has {len(response.data)} vectors for {len(texts)} inputs"
            )

        ordered = sorted(response.data, key=lambda item: item.index)
        return [fit_dimension(list(item.embedding), self.dimension) for item in ordered]


class ResilientEmbeddingClient:
    """Embedding client wrapper applying timeout and retry policy."""

    def __init__(
        self,
        inner: EmbeddingClient,
        executor: ProviderCallExecutor,
        config: ProviderCallConfig,
        provider: str = "embeddings",
    ) -> None:
        self.inner = inner
        self.dimension = inner.dimension
        self._executor = executor
        self._config = config
        self._provider = provider

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        return await self._executor.execute(
            ProviderCallContext(provider=self._provider, operation="embed"),
            self._config,
            lambda: self.inner.embed(texts),
        )


def get_embedding_client(settings: Settings) -> EmbeddingClient:
    """Factory function to get appropriate embedding client based on config.

    Returns:
        OpenAIEmbeddingClient if API key is configured,
        DeterministicStubEmbeddingClient otherwise
    """
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info(f"Using OpenAI embeddings ({settings.openai_embedding_model})")
        return OpenAIEmbeddingClient(
            api_key=api_key.get_secret_value(),
            model=settings.openai_embedding_model,
            dimension=settings.embedding_dimension,
        )

    logger.warning("No OpenAI API key configured, using deterministic stub embeddings")
    return DeterministicStubEmbeddingClient(dimension=settings.embedding_dimension)
