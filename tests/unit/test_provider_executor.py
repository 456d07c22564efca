"""Unit tests for the provider call executor.

Tests cover:
1. Timeout behavior
2. Retry with backoff for transient failures
3. Terminal errors raised immediately
4. Cancellation propagation
5. Metrics wiring
"""

import asyncio

import pytest
from prometheus_client import REGISTRY

from backend.docchat.errors import EmbeddingProviderError, GenerationProviderError
from backend.docchat.providers.executor import (
    ProviderCallConfig,
    ProviderCallContext,
    ProviderCallExecutor,
)
from backend.docchat.utils.logging import StructuredProviderLogger
from backend.docchat.utils.metrics import PrometheusProviderMetrics

CTX = ProviderCallContext(provider="test_provider", operation="embed")


def make_config(**overrides: object) -> ProviderCallConfig:
    values: dict[str, object] = {
        "timeout_s": 1.0,
        "retry_count": 2,
        "backoff_base_ms": 100,
        "retry_jitter_min_ms": 0,
        "retry_jitter_max_ms": 0,
        "error_cls": EmbeddingProviderError,
    }
    values.update(overrides)
    return ProviderCallConfig(**values)  # type: ignore[arg-type]


class RecordingSleep:
    """Sleep replacement recording requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class TestProviderCallExecutor:
    """Test retry pipeline semantics."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self) -> None:
        sleep = RecordingSleep()
        executor = ProviderCallExecutor(sleep_fn=sleep)

        async def call() -> str:
            return "ok"

        assert await executor.execute(CTX, make_config(), call) == "ok"
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_transient_errors_retried_with_exponential_backoff(self) -> None:
        sleep = RecordingSleep()
        executor = ProviderCallExecutor(sleep_fn=sleep)
        attempts = 0

        async def call() -> str:
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise EmbeddingProviderError("rate limited", transient=True)
            return "ok"

        assert await executor.execute(CTX, make_config(), call) == "ok"
        assert attempts == 3
        assert sleep.delays == pytest.approx([0.1, 0.2])

    @pytest.mark.asyncio
    async def test_terminal_error_not_retried(self) -> None:
        sleep = RecordingSleep()
        executor = ProviderCallExecutor(sleep_fn=sleep)
        attempts = 0

        async def call() -> str:
            nonlocal attempts
            attempts += 1
            raise GenerationProviderError("bad api key", transient=False)

        with pytest.raises(GenerationProviderError, match="bad api key"):
            await executor.execute(CTX, make_config(), call)

        assert attempts == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_retries_exhausted_raises_last_error(self) -> None:
        executor = ProviderCallExecutor(sleep_fn=RecordingSleep())
        attempts = 0

        async def call() -> str:
            nonlocal attempts
            attempts += 1
            raise EmbeddingProviderError(f"failure {attempts}", transient=True)

        with pytest.raises(EmbeddingProviderError, match="failure 3") as exc_info:
            await executor.execute(CTX, make_config(retry_count=2), call)

        assert exc_info.value.transient is True
        assert attempts == 3

    @pytest.mark.asyncio
    async def test_timeout_surfaces_as_component_error(self) -> None:
        executor = ProviderCallExecutor(sleep_fn=RecordingSleep())
        attempts = 0

        async def call() -> str:
            nonlocal attempts
            attempts += 1
            await asyncio.sleep(10)
            return "never"

        config = make_config(timeout_s=0.01, retry_count=1, error_cls=GenerationProviderError)
        with pytest.raises(GenerationProviderError, match="timed out") as exc_info:
            await executor.execute(CTX, config, call)

        assert exc_info.value.transient is True
        assert attempts == 2

    @pytest.mark.asyncio
    async def test_timeout_then_success(self) -> None:
        executor = ProviderCallExecutor(sleep_fn=RecordingSleep())
        attempts = 0

        async def call() -> str:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                await asyncio.sleep(10)
            return "ok"

        assert await executor.execute(CTX, make_config(timeout_s=0.01), call) == "ok"

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self) -> None:
        executor = ProviderCallExecutor(sleep_fn=RecordingSleep())
        started = asyncio.Event()

        async def call() -> str:
            started.set()
            await asyncio.sleep(10)
            return "never"

        task = asyncio.create_task(executor.execute(CTX, make_config(timeout_s=30), call))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_unexpected_exceptions_propagate_unchanged(self) -> None:
        executor = ProviderCallExecutor(sleep_fn=RecordingSleep())

        async def call() -> str:
            raise RuntimeError("bug")

        with pytest.raises(RuntimeError, match="bug"):
            await executor.execute(CTX, make_config(), call)

    @pytest.mark.asyncio
    async def test_metrics_recorded(self) -> None:
        ctx = ProviderCallContext(provider="metrics_check", operation="complete")
        executor = ProviderCallExecutor(
            metrics=PrometheusProviderMetrics(),
            logger=StructuredProviderLogger(),
            sleep_fn=RecordingSleep(),
        )
        attempts = 0

        async def call() -> str:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise EmbeddingProviderError("flaky", transient=True)
            return "ok"

        errors_before = (
            REGISTRY.get_sample_value(
                "provider_errors_total", {"provider": "metrics_check", "reason": "transient"}
            )
            or 0.0
        )

        await executor.execute(ctx, make_config(), call)

        errors_after = REGISTRY.get_sample_value(
            "provider_errors_total", {"provider": "metrics_check", "reason": "transient"}
        )
        assert errors_after == errors_before + 1
        assert (
            REGISTRY.get_sample_value(
                "provider_latency_ms_count", {"provider": "metrics_check", "outcome": "success"}
            )
            >= 1
        )
