"""
Prometheus metrics for the sync API.

This module provides:
- HTTP request counter (method, path, status)
- Sync record outcome counter (result)
- Bulk insert batch counter
- Request latency histogram (method, path)

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# result: inserted, skipped, rejected
sync_records_total = Counter(
    "sync_records_total",
    "Synced message records by outcome",
    labelnames=["result"]
)

sync_batches_total = Counter(
    "sync_batches_total",
    "Bulk insert batches written by the sync endpoint"
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    # Normalize path to avoid high-cardinality labels
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_sync_outcome(inserted: int, skipped: int, rejected: int) -> None:
    """
    Record the per-record outcome counts of one sync request.

    Args:
        inserted: Records newly stored
        skipped: Valid records already stored (duplicates)
        rejected: Records that failed validation
    """
    sync_records_total.labels(result="inserted").inc(inserted)
    sync_records_total.labels(result="skipped").inc(skipped)
    sync_records_total.labels(result="rejected").inc(rejected)


def record_sync_batch() -> None:
    sync_batches_total.inc()


def get_metrics() -> bytes:
    """Generate Prometheus exposition format metrics."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
