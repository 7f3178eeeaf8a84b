"""
Prometheus metrics for Assistant Bridge services.
"""

import threading
from typing import Any, Dict, Optional, Sequence, Tuple

from prometheus_client import CollectorRegistry, Counter, Histogram, Info


# name -> (type, help, labels)
METRIC_DEFINITIONS: Dict[str, Tuple[type, str, Sequence[str]]] = {
    "http_requests_total": (Counter, "Total HTTP requests", ("method", "endpoint", "status_code")),
    "http_request_duration_seconds": (Histogram, "HTTP request duration in seconds", ("method", "endpoint")),
    "health_check_total": (Counter, "Total health check requests", ("status",)),
    "errors_total": (Counter, "Total errors", ("error_type", "service")),
    "gateway_requests_total": (
        Counter, "Gateway invocations by logical function and final outcome", ("function", "outcome")
    ),
    "gateway_attempts_total": (
        Counter, "Individual HTTP attempts made by the gateway executor", ("function", "outcome")
    ),
    "gateway_request_duration_seconds": (
        Histogram, "Gateway invocation duration in seconds, retries included", ("function",)
    ),
    "cache_hits_total": (Counter, "Total cache hits", ("cache_type",)),
    "cache_misses_total": (Counter, "Total cache misses", ("cache_type",)),
}


class MetricsCollector:
    """Metrics of one service.

    Metrics are registered on ``registry``; with the default ``None`` they stay
    unregistered, so tests can build as many collectors as they need.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None, version: str = "1.0.0"):
        self.service_name = service_name
        self.registry = registry
        self._lock = threading.Lock()
        self._metrics: Dict[str, Any] = {
            name: metric_type(name, description, list(labels), registry=registry)
            for name, (metric_type, description, labels) in METRIC_DEFINITIONS.items()
        }

        info = Info("service", "Service information", registry=registry)
        info.info({"service": service_name, "version": version})

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        self.increment_counter("http_requests_total", method=method, endpoint=endpoint, status_code=str(status_code))
        self.observe_histogram("http_request_duration_seconds", duration, method=method, endpoint=endpoint)

    def record_health_check(self, status: str):
        self.increment_counter("health_check_total", status=status)

    def record_error(self, error_type: str, service: Optional[str] = None):
        self.increment_counter("errors_total", error_type=error_type, service=service or self.service_name)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter; unknown metric names are ignored."""
        metric = self._metrics.get(metric_name)
        if metric is not None:
            with self._lock:
                metric.labels(**labels).inc()

    def observe_histogram(self, metric_name: str, value: float, **labels):
        metric = self._metrics.get(metric_name)
        if metric is not None:
            metric.labels(**labels).observe(value)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
