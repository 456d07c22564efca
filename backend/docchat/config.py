"""Typed settings configuration - single source of truth."""

from functools import lru_cache
from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Storage
    storage_backend: Literal["memory", "sql"] = "memory"
    database_url: str | None = None
    # Production schemas are managed with `alembic upgrade head`
    create_tables_on_startup: bool = False

    # Providers
    openai_api_key: SecretStr | None = None
    openai_embedding_model: str = "text-embedding-3-small"
    openai_chat_model: str = "gpt-4o-mini"
    embedding_dimension: int = 1536

    # Chunking (characters)
    chunk_size: int = 1000
    chunk_overlap: int = 200

    # Retrieval
    retrieval_top_k: int = 5
    retrieval_min_similarity: float = 0.1
    retrieval_candidate_multiplier: int = 4

    # Context assembly
    history_limit: int = 10
    max_context_chars: int = 12000

    # Generation
    generation_temperature: float = 0.7
    generation_max_tokens: int = 1000

    # Timeouts (seconds)
    embedding_timeout_s: float = 30.0
    generation_timeout_s: float = 60.0

    # Retries
    provider_retry_count: int = 2
    retry_backoff_base_ms: int = 250
    retry_jitter_min_ms: int = 50
    retry_jitter_max_ms: int = 250

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
