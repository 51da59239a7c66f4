"""
Prometheus Metrics for the GPAI relay.

RED metrics for the HTTP surface plus cache and upstream counters.
Scraped from GET /metrics.

Label cardinality stays small: endpoints and status codes only,
never client addresses or cache keys.
"""

from prometheus_client import Counter, Histogram, Gauge, REGISTRY
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# RED METRICS (Rate, Errors, Duration)
# =============================================================================

relay_requests_total = Counter(
    "relay_requests_total",
    "Total HTTP requests to the relay",
    labelnames=["endpoint", "status"],
)

relay_request_duration_seconds = Histogram(
    "relay_request_duration_seconds",
    "HTTP request latency in seconds",
    labelnames=["endpoint"],
    buckets=[
        0.005,  # cache hits
        0.01,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,    # typical completion
        10.0,
        30.0,   # upstream timeout
        float("inf")
    ]
)


# =============================================================================
# CACHE METRICS
# =============================================================================

relay_cache_lookups_total = Counter(
    "relay_cache_lookups_total",
    "Response cache lookups by result",
    labelnames=["result"],
)

relay_cache_evictions_total = Counter(
    "relay_cache_evictions_total",
    "Entries evicted from the response cache (FIFO)",
)

relay_cache_entries = Gauge(
    "relay_cache_entries",
    "Entries currently held in the response cache",
)


# =============================================================================
# UPSTREAM METRICS
# =============================================================================

relay_upstream_errors_total = Counter(
    "relay_upstream_errors_total",
    "Failed calls to the completion provider",
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def record_request(endpoint: str, status: int, duration_seconds: float) -> None:
    """Record request counter and latency. Called from the logging middleware."""
    relay_requests_total.labels(endpoint=endpoint, status=str(status)).inc()
    relay_request_duration_seconds.labels(endpoint=endpoint).observe(duration_seconds)


def record_cache_lookup(result: str) -> None:
    """
    Record a cache lookup.

    Args:
        result: "hit" or "miss"
    """
    if result not in ("hit", "miss"):
        logger.warning(f"Invalid cache lookup result: {result}")
        return

    relay_cache_lookups_total.labels(result=result).inc()


def record_cache_eviction() -> None:
    relay_cache_evictions_total.inc()


def set_cache_size(size: int) -> None:
    relay_cache_entries.set(size)


def record_upstream_error() -> None:
    relay_upstream_errors_total.inc()


__all__ = [
    "relay_requests_total",
    "relay_request_duration_seconds",
    "relay_cache_lookups_total",
    "relay_cache_evictions_total",
    "relay_cache_entries",
    "relay_upstream_errors_total",
    "record_request",
    "record_cache_lookup",
    "record_cache_eviction",
    "set_cache_size",
    "record_upstream_error",
    "REGISTRY",
]
