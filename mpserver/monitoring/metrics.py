"""
Request metrics collection using Prometheus.

Tracks per endpoint:
- Request count by method and response code
- Request latency in milliseconds
"""
from typing import Optional, Protocol

from prometheus_client import CollectorRegistry, Counter, Histogram, REGISTRY


class RequestObserver(Protocol):
    """Receives one observation per handled request."""

    def observe(self, method: str, endpoint: str, code: int, duration_ms: Optional[float]) -> None:
        """Record one request. duration_ms is None when the request was not timed."""
        ...


class PrometheusMetrics:
    """RequestObserver exporting Prometheus counters and histograms."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else REGISTRY

        self.requests_total = Counter(
            'mpserver_requests_total',
            'Count of all HTTP requests for the mpserver',
            ['method', 'endpoint', 'code'],
            registry=self.registry,
        )

        self.request_duration_ms = Histogram(
            'mpserver_request_duration_ms',
            'Request latency in milliseconds',
            ['endpoint'],
            buckets=[5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000, 60000],
            registry=self.registry,
        )

    def observe(self, method: str, endpoint: str, code: int, duration_ms: Optional[float]) -> None:
        self.requests_total.labels(method=method, endpoint=endpoint, code=str(code)).inc()
        if duration_ms is not None:
            self.request_duration_ms.labels(endpoint=endpoint).observe(duration_ms)
