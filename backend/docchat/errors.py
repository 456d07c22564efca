"""Error taxonomy for ingestion, retrieval and generation."""


class DocChatError(Exception):
    """Base class for all document chat errors."""

    pass


class ConfigurationError(DocChatError):
    """Invalid sizing or tuning parameters (caller bug, never retried)."""

    pass


class NotFoundError(DocChatError):
    """Resource missing or not owned by the caller.

    Raised for both cases so the existence of another owner's records never leaks.
    """

    pass


class UnsupportedFormatError(DocChatError):
    """Text extraction does not support the given MIME type."""

    pass


class ProviderError(DocChatError):
    """Upstream model provider failure.

    Attributes:
        transient: True for network, timeout, rate limit and 5xx failures that
            may succeed on retry; False for auth and request errors.
    """

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


class EmbeddingProviderError(ProviderError):
    """Embedding provider call failed."""

    pass


class GenerationProviderError(ProviderError):
    """Generative completion call failed."""

    pass
