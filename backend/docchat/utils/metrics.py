"""Prometheus metrics for provider calls, ingestion and queries."""

from prometheus_client import Counter, Histogram

# Provider call metrics
provider_latency_ms = Histogram(
    "provider_latency_ms",
    "Model provider call latency in milliseconds",
    ["provider", "outcome"],
    buckets=[10, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000, 60000],
)

provider_errors_total = Counter(
    "provider_errors_total",
    "Total model provider call errors",
    ["provider", "reason"],
)

# Pipeline metrics
query_outcomes_total = Counter(
    "rag_query_outcomes_total",
    "Queries by final stage",
    ["stage"],
)

ingested_chunks_total = Counter(
    "rag_ingested_chunks_total",
    "Chunks committed to the vector index",
)


class PrometheusProviderMetrics:
    """Prometheus-based provider metrics implementation."""

    def record_latency(self, provider: str, outcome: str, latency_ms: float) -> None:
        """Record provider call latency."""
        provider_latency_ms.labels(provider=provider, outcome=outcome).observe(latency_ms)

    def inc_error(self, provider: str, reason: str) -> None:
        """Increment error counter."""
        provider_errors_total.labels(provider=provider, reason=reason).inc()
