"""Prometheus metrics for outbound API traffic."""

from prometheus_client import Counter, Histogram


def create_counter(
    name: str,
    description: str,
    labels: list[str] | None = None,
) -> Counter:
    """Create a Prometheus counter metric.

    Args:
        name: Metric name (e.g., 'data_access_requests_total')
        description: Human-readable description
        labels: List of label names for the metric
    """
    return Counter(name, description, labels or [])


def create_histogram(
    name: str,
    description: str,
    labels: list[str] | None = None,
    buckets: tuple[float, ...] | None = None,
) -> Histogram:
    """Create a Prometheus histogram metric.

    Args:
        name: Metric name (e.g., 'data_access_request_duration_seconds')
        description: Human-readable description
        labels: List of label names for the metric
        buckets: Custom bucket boundaries (defaults to client-side latencies)
    """
    if buckets is None:
        buckets = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
    return Histogram(name, description, labels or [], buckets=buckets)


REQUEST_COUNT = create_counter(
    "data_access_requests_total",
    "Outbound API requests by outcome",
    ["method", "endpoint", "outcome"],
)

REQUEST_LATENCY = create_histogram(
    "data_access_request_duration_seconds",
    "Outbound API request latency in seconds",
    ["method", "endpoint"],
)

RETRY_COUNT = create_counter(
    "data_access_retries_total",
    "Retries of transient request failures",
    ["operation"],
)

CACHE_LOOKUPS = create_counter(
    "data_access_cache_lookups_total",
    "Response cache lookups by result",
    ["result"],
)
