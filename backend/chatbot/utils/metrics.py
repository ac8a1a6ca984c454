"""Prometheus metrics for storage failures and document streaming."""

from prometheus_client import Counter, Histogram

db_errors_total = Counter(
    "db_errors_total",
    "Total translated database errors",
    ["operation", "kind"],
)

document_update_total = Counter(
    "document_update_total",
    "Total document update invocations",
    ["kind", "outcome"],
)

document_update_deltas_total = Counter(
    "document_update_deltas_total",
    "Total delta events emitted to the client channel",
    ["kind"],
)

document_update_latency_ms = Histogram(
    "document_update_latency_ms",
    "Document update stream latency in milliseconds",
    ["kind"],
    buckets=[100, 250, 500, 1000, 2000, 4000, 8000, 16000, 32000],
)


class PrometheusStreamMetrics:
    """Prometheus-based document stream metrics implementation."""

    def record_latency(self, kind: str, latency_ms: float) -> None:
        """Record document update latency."""
        document_update_latency_ms.labels(kind=kind).observe(latency_ms)

    def inc_outcome(self, kind: str, outcome: str) -> None:
        """Increment invocation counter for an outcome."""
        document_update_total.labels(kind=kind, outcome=outcome).inc()

    def inc_deltas(self, kind: str, count: int) -> None:
        """Add emitted delta events."""
        if count:
            document_update_deltas_total.labels(kind=kind).inc(count)


def inc_db_error(operation: str, kind: str) -> None:
    """Increment translated database error counter."""
    db_errors_total.labels(operation=operation, kind=kind).inc()
