from __future__ import annotations

from prometheus_client import Counter, Histogram, start_http_server

completions_total = Counter(
    "llm_completions_total",
    "Completion calls by final outcome",
    labelnames=["provider", "status"],
)

completion_retries_total = Counter(
    "llm_completion_retries_total",
    "Failed completion attempts that were retried",
    labelnames=["provider", "stage"],
)

completion_latency_seconds = Histogram(
    "llm_completion_latency_seconds",
    "Wall-clock time of a completion call including retries",
    buckets=[0.1, 0.3, 0.5, 1, 2, 5, 10, 30, 60, 120],
    labelnames=["provider"],
)

cache_events_total = Counter(
    "llm_cache_events_total",
    "Response cache lookups and stores",
    labelnames=["event"],
)

upstream_requests_total = Counter(
    "upstream_requests_total",
    "HTTP requests sent to the provider",
    labelnames=["status"],
)

upstream_circuit_breaker_events_total = Counter(
    "upstream_circuit_breaker_events_total",
    "Circuit breaker events",
    labelnames=["event"],
)


def maybe_start_metrics(*, enable: bool, bind: str, port: int) -> None:
    if not enable:
        return
    start_http_server(port, addr=bind)
