"""Async executor for model provider calls with timeouts and bounded retries.

Implements provider call execution with:
- Hard timeout per attempt (asyncio.wait_for)
- Bounded retries for transient failures, exponential backoff plus jitter
- Terminal provider errors raised immediately
- Cancellation propagated untouched
- Metrics and structured logging
"""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from backend.docchat.errors import ProviderError

T = TypeVar("T")


@dataclass(frozen=True)
class ProviderCallContext:
    """Context for provider call tracing."""

    provider: str
    operation: str
    trace_id: str | None = None


@dataclass
class ProviderCallConfig:
    """Configuration for provider call execution."""

    timeout_s: float
    retry_count: int
    backoff_base_ms: int
    retry_jitter_min_ms: int
    retry_jitter_max_ms: int
    error_cls: type[ProviderError] = ProviderError


# Metrics interface (implemented by utils.metrics)
class ProviderMetrics:
    """Interface for provider call metrics."""

    def record_latency(self, provider: str, outcome: str, latency_ms: float) -> None:
        """Record provider call latency."""
        pass

    def inc_error(self, provider: str, reason: str) -> None:
        """Increment error counter."""
        pass


# Logging interface (implemented by utils.logging)
class ProviderLogger:
    """Interface for structured logging."""

    def log_attempt(
        self,
        ctx: ProviderCallContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        """Log provider call attempt."""
        pass


class ProviderCallExecutor:
    """Runs provider calls with timeout and retry policy."""

    def __init__(
        self,
        metrics: ProviderMetrics | None = None,
        logger: ProviderLogger | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize executor.

        Args:
            metrics: Metrics recorder (optional, defaults to no-op)
            logger: Structured logger (optional, defaults to no-op)
            sleep_fn: Injectable sleep function (default: asyncio.sleep)
        """
        self._metrics = metrics or ProviderMetrics()
        self._logger = logger or ProviderLogger()
        self._sleep = sleep_fn or asyncio.sleep

    def _backoff_seconds(self, config: ProviderCallConfig, attempt: int) -> float:
        jitter_ms = random.uniform(config.retry_jitter_min_ms, config.retry_jitter_max_ms)
        return (config.backoff_base_ms * (2**attempt) + jitter_ms) / 1000

    async def execute(
        self,
        ctx: ProviderCallContext,
        config: ProviderCallConfig,
        fn: Callable[[], Awaitable[T]],
    ) -> T:
        """Execute a provider call with the retry pipeline.

        Args:
            ctx: Call context (provider and operation names)
            config: Timeout and retry configuration
            fn: Zero-argument coroutine factory, invoked once per attempt

        Returns:
            Result of the first successful attempt

        Raises:
            config.error_cls: Timed out on every attempt (transient=True)
            ProviderError: Terminal provider error, or last transient error
                once retries are exhausted
        """
        last_error: Exception | None = None

        for attempt in range(config.retry_count + 1):
            attempt_start = time.monotonic()

            try:
                result = await asyncio.wait_for(fn(), timeout=config.timeout_s)

                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                self._metrics.record_latency(ctx.provider, "success", elapsed_ms)
                self._logger.log_attempt(ctx, attempt + 1, "success", elapsed_ms)
                return result

            except asyncio.TimeoutError as e:
                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                last_error = e

                self._metrics.inc_error(ctx.provider, "timeout")
                self._logger.log_attempt(
                    ctx, attempt + 1, "timeout", elapsed_ms, error_reason="timeout"
                )

            except ProviderError as e:
                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                last_error = e

                reason = "transient" if e.transient else "terminal"
                self._metrics.inc_error(ctx.provider, reason)
                self._logger.log_attempt(
                    ctx, attempt + 1, "error", elapsed_ms, error_reason=type(e).__name__
                )

                if not e.transient:
                    raise

            # Retry if not last attempt
            if attempt < config.retry_count:
                await self._sleep(self._backoff_seconds(config, attempt))

        # All attempts exhausted
        if isinstance(last_error, ProviderError):
            raise last_error
        raise config.error_cls(
            f"{ctx.provider} {ctx.operation} timed out after {config.retry_count + 1} attempts",
            transient=True,
        ) from last_error
