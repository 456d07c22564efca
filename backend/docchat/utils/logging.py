"""Logging setup and structured logging for provider calls."""

import logging
from typing import Any

from backend.docchat.providers.executor import ProviderCallContext

logger = logging.getLogger(__name__)

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Install a console handler on the root logger (once per process)."""
    global _configured
    if _configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root = logging.getLogger()
    root.setLevel(level.upper())
    root.addHandler(handler)

    _configured = True
    logger.info("Logging initialized at level %s", level.upper())


class StructuredProviderLogger:
    """Structured logger for provider call attempts."""

    def log_attempt(
        self,
        ctx: ProviderCallContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        """Log provider call attempt with structured data."""
        log_data: dict[str, Any] = {
            "trace_id": ctx.trace_id,
            "provider": ctx.provider,
            "operation": ctx.operation,
            "attempt": attempt,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }

        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Provider call: {ctx.provider}.{ctx.operation} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
