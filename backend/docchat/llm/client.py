"""Generative completion clients with OpenAI integration.

Security: Reads API key from settings only, never hardcoded.
Provides deterministic stub when no key present for testing.
"""

import logging
from typing import Protocol

import openai
from openai import AsyncOpenAI

from backend.docchat.config import Settings
from backend.docchat.errors import GenerationProviderError
from backend.docchat.models.conversation import ChatTurn
from backend.docchat.providers.executor import (
    ProviderCallConfig,
    ProviderCallContext,
    ProviderCallExecutor,
)
from backend.docchat.providers.openai_errors import is_transient_openai_error

logger = logging.getLogger(__name__)

MAX_ANSWER_CHARS = 10000


class GenerationClient(Protocol):
    """Protocol for generative completion clients."""

    async def complete(
        self,
        *,
        system_prompt: str,
        history: list[ChatTurn],
        user_prompt: str,
    ) -> str:
        """Generate an answer.

        Args:
            system_prompt: Instruction plus optional document context
            history: Prior turns, oldest first
            user_prompt: Current question

        Returns:
            Non-empty answer text

        Raises:
            GenerationProviderError: On transport, auth or empty-response failures
        """
        ...


class DeterministicStubClient:
    """Deterministic stub client for testing (no API key required)."""

    async def complete(
        self,
        *,
        system_prompt: str,
        history: list[ChatTurn],
        user_prompt: str,
    ) -> str:
        """Generate deterministic stub answer."""
        if "\nContext:\n" in system_prompt:
            passages = system_prompt.count("Document: ")
            return (
                f"Based on {passages} passage(s) from your documents: {user_prompt}\n\n"
                f"*This is a stub response generated without LLM synthesis.*"
            )
        return (
            "I don't have enough information in the provided documents to answer that "
            "question.\n\n*This is a stub response generated without LLM synthesis.*"
        )


class OpenAIGenerationClient:
    """OpenAI-backed chat completion client."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        *,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        client: AsyncOpenAI | None = None,
    ):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from environment)
            model: Model name to use (default: gpt-4o-mini for cost efficiency)
            temperature: Sampling temperature
            max_tokens: Completion token cap
            client: Preconfigured SDK client (tests)
        """
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def complete(
        self,
        *,
        system_prompt: str,
        history: list[ChatTurn],
        user_prompt: str,
    ) -> str:
        """Generate answer using OpenAI API."""
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": turn.role.value, "content": turn.content} for turn in history)
        messages.append({"role": "user", "content": user_prompt})

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.OpenAIError as e:
            transient = is_transient_openai_error(e)
            logger.error(f"OpenAI API call failed (transient={transient}): {e}")
            raise GenerationProviderError(
                f"Completion request failed: {type(e).__name__}", transient=transient
            ) from e

        answer = response.choices[0].message.content if response.choices else None

        # Validation: Check for empty response
        if not answer or not answer.strip():
            raise GenerationProviderError("OpenAI returned an empty response")

        # Validation: Check for unreasonably long response
        if len(answer) > MAX_ANSWER_CHARS:
            logger.warning(
                f"OpenAI response unexpectedly large ({len(answer)} chars), "
                f"truncating to {MAX_ANSWER_CHARS}"
            )
            answer = answer[:MAX_ANSWER_CHARS] + "\n\n[Truncated]"

        return answer


class ResilientGenerationClient:
    """Generation client wrapper applying timeout and retry policy."""

    def __init__(
        self,
        inner: GenerationClient,
        executor: ProviderCallExecutor,
        config: ProviderCallConfig,
        provider: str = "generation",
    ) -> None:
        self.inner = inner
        self._executor = executor
        self._config = config
        self._provider = provider

    async def complete(
        self,
        *,
        system_prompt: str,
        history: list[ChatTurn],
        user_prompt: str,
    ) -> str:
        return await self._executor.execute(
            ProviderCallContext(provider=self._provider, operation="complete"),
            self._config,
            lambda: self.inner.complete(
                system_prompt=system_prompt, history=history, user_prompt=user_prompt
            ),
        )


def get_generation_client(settings: Settings) -> GenerationClient:
    """Factory function to get appropriate generation client based on config.

    Returns:
        OpenAIGenerationClient if API key is configured, DeterministicStubClient otherwise
    """
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI client for generation")
        return OpenAIGenerationClient(
            api_key=api_key.get_secret_value(),
            model=settings.openai_chat_model,
            temperature=settings.generation_temperature,
            max_tokens=settings.generation_max_tokens,
        )

    logger.warning("No OpenAI API key configured, using deterministic stub client")
    return DeterministicStubClient()
