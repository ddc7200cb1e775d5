"""
Prometheus metrics for the SMS relay.

This module provides:
- HTTP request counter (method, path, status)
- Webhook outcome counter (result)
- Request and publish latency histograms
- Viewer delivery counter and active subscription gauge

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

# HTTP request counter with labels for method, path, and status code
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# Webhook processing outcome counter
# result: published, validation_error, publish_unreachable, publish_unauthorized, publish_failed
webhook_requests_total = Counter(
    "webhook_requests_total",
    "Total webhook processing outcomes",
    labelnames=["result"]
)

# Request latency histogram in seconds
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# Time spent in a single broker PUBLISH, successful or not
publish_latency_seconds = Histogram(
    "publish_latency_seconds",
    "Broker publish latency in seconds"
)

viewer_events_delivered_total = Counter(
    "viewer_events_delivered_total",
    "Events handed to viewer subscriptions"
)

active_subscriptions = Gauge(
    "active_subscriptions",
    "Channel subscriptions currently held by viewers"
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


def record_webhook_outcome(result: str) -> None:
    """
    Record a webhook processing outcome.

    Args:
        result: Processing result - one of:
            - "published": Event accepted by the broker
            - "validation_error": `to` or `msisdn` missing
            - "publish_unreachable": Broker down or timed out
            - "publish_unauthorized": Broker rejected credentials
            - "publish_failed": Broker refused the command
    """
    webhook_requests_total.labels(result=result).inc()


def record_publish_latency(latency_seconds: float) -> None:
    publish_latency_seconds.observe(latency_seconds)


def record_viewer_delivery() -> None:
    viewer_events_delivered_total.inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    """Content type string for Prometheus exposition format."""
    return CONTENT_TYPE_LATEST
