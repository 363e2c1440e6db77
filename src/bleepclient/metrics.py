"""Prometheus metrics definitions for bleepclient.

All metrics use the ``bleepclient_`` prefix for namespace isolation. They
describe the requests this process sends to the remote store; exposing
them (an HTTP endpoint, a push gateway) is left to the host application.

When metrics are disabled the module-level references stay ``None`` and
the ``record_*`` helpers do nothing.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# Flag indicating whether metrics have been initialised via init_metrics().
_initialized: bool = False

# ---------------------------------------------------------------------------
# Request counter and latency  (labels: method, status / method)
# ---------------------------------------------------------------------------
requests_total: Counter | None = None
request_duration_seconds: Histogram | None = None

# ---------------------------------------------------------------------------
# Byte counters
# ---------------------------------------------------------------------------
bytes_sent_total: Counter | None = None
bytes_received_total: Counter | None = None

# ---------------------------------------------------------------------------
# Multipart outcomes  (labels: outcome)
# ---------------------------------------------------------------------------
multipart_uploads_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics.

    Safe to call more than once; collectors are registered in the global
    registry on the first call only.
    """
    global _initialized
    global requests_total, request_duration_seconds, bytes_sent_total, bytes_received_total
    global multipart_uploads_total

    if _initialized:
        return

    requests_total = Counter(
        "bleepclient_requests_total",
        "Total requests sent to the object store by method and status",
        ["method", "status"],
    )

    request_duration_seconds = Histogram(
        "bleepclient_request_duration_seconds",
        "Time from sending a request to receiving its response headers",
        ["method"],
    )

    bytes_sent_total = Counter(
        "bleepclient_bytes_sent_total",
        "Total bytes sent in request bodies",
    )

    bytes_received_total = Counter(
        "bleepclient_bytes_received_total",
        "Total bytes received in fully read response bodies",
    )

    multipart_uploads_total = Counter(
        "bleepclient_multipart_uploads_total",
        "Multipart uploads by final outcome",
        ["outcome"],
    )

    _initialized = True


def record_request(
    method: str, status: int, sent: int = 0, received: int = 0, duration: float | None = None
) -> None:
    if requests_total is None:
        return
    requests_total.labels(method=method, status=str(status)).inc()
    if duration is not None and request_duration_seconds is not None:
        request_duration_seconds.labels(method=method).observe(duration)
    if sent and bytes_sent_total is not None:
        bytes_sent_total.inc(sent)
    if received and bytes_received_total is not None:
        bytes_received_total.inc(received)


def record_multipart(outcome: str) -> None:
    if multipart_uploads_total is None:
        return
    multipart_uploads_total.labels(outcome=outcome).inc()
