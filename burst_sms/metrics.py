"""
Prometheus metrics for the burst SMS service.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Gateway send counter (result)
- Burst run counter (result)
- Inbound webhook outcome counter (outcome)

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

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# result: sent, failed
gateway_sends_total = Counter(
    "gateway_sends_total",
    "Messages handed to the SMS gateway, by outcome",
    labelnames=["result"]
)

# result: completed, empty, error
burst_runs_total = Counter(
    "burst_runs_total",
    "Burst dispatch runs, by result",
    labelnames=["result"]
)

inbound_events_total = Counter(
    "inbound_events_total",
    "Inbound webhook events, by processing outcome",
    labelnames=["outcome"]
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


def record_gateway_send(result: str) -> None:
    gateway_sends_total.labels(result=result).inc()


def record_burst_run(result: str) -> None:
    burst_runs_total.labels(result=result).inc()


def record_inbound_outcome(outcome: str) -> None:
    """
    Record how an inbound webhook event was handled.

    Args:
        outcome: one of the InboundOutcome values (ignored_outbound,
            opted_out, auto_reply_sent, ...)
    """
    inbound_events_total.labels(outcome=outcome).inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
