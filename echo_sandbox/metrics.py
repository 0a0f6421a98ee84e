# ------------------------ Prometheus Metrics ------------------------
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


class EchoMetrics:
    """Collectors for one server instance, on their own registry."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self.request_total = Counter(
            "echo_requests_total", "Total number of requests processed",
            ["method", "path", "status"], registry=self.registry,
        )
        # ~10ms to ~163s
        self.request_latency = Histogram(
            "echo_request_duration_seconds", "Request latency in seconds",
            buckets=[0.01 * 2 ** i for i in range(15)], registry=self.registry,
        )
        self.chaos_errors = Counter(
            "echo_chaos_errors_total", "Total number of chaos-induced errors",
            ["type"], registry=self.registry,
        )

    def injected(self, kind: str) -> None:
        self.chaos_errors.labels(type=kind).inc()

    def observe(self, method: str, path: str, status: int, seconds: float) -> None:
        self.request_latency.observe(seconds)
        self.request_total.labels(method=method, path=path, status=str(status)).inc()

    def export(self) -> bytes:
        return generate_latest(self.registry)

    content_type = CONTENT_TYPE_LATEST
