"""
Prometheus metrics for the Player Cache service.
"""

import time
from contextlib import contextmanager
from typing import Any, Dict, Optional, Sequence, Tuple, Type

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info

# name -> (type, help, label names)
_DEFINITIONS: Dict[str, Tuple[Type, str, Sequence[str]]] = {
    "http_requests_total": (Counter, "Total HTTP requests", ("method", "endpoint", "status_code")),
    "http_request_duration_seconds": (Histogram, "HTTP request duration in seconds", ("method", "endpoint")),
    "health_check_total": (Counter, "Total health and readiness checks", ("status",)),
    "errors_total": (Counter, "Errors returned to callers", ("error_type", "service")),
    "player_cache_lookups_total": (Counter, "Cache lookups by outcome", ("result",)),
    "player_cache_store_errors_total": (
        Counter,
        "Cache store failures absorbed by the request path",
        ("operation",),
    ),
    "upstream_fetches_total": (Counter, "Upstream fetches by outcome", ("outcome",)),
    "upstream_fetch_duration_seconds": (Histogram, "Upstream HTTP round trip in seconds", ()),
    "cache_expired_rows_deleted_total": (Counter, "Expired cache rows removed by the sweeper", ()),
    "cache_sweep_last_run_timestamp": (Gauge, "Unix time of the last successful expired row sweep", ()),
}


class MetricsCollector:
    """Owns the service's metrics, registered on a private registry.

    A private registry lets tests build many app instances in one process
    without duplicate-timeseries errors.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}

        info = Info("service", "Service information", registry=self.registry)
        info.info({"service": service_name, "version": "1.0.0"})
        self._metrics["service_info"] = info

        for name, (metric_type, documentation, labels) in _DEFINITIONS.items():
            self._metrics[name] = metric_type(name, documentation, labels, registry=self.registry)

    def get_metric(self, name: str):
        return self._metrics.get(name)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code),
        ).inc()
        self._metrics["http_request_duration_seconds"].labels(method=method, endpoint=endpoint).observe(duration)

    def record_health_check(self, status: str):
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        self._metrics["errors_total"].labels(error_type=error_type, service=service or self.service_name).inc()

    @contextmanager
    def time_operation(self, metric_name: str, **labels):
        """Observe the duration of the wrapped block on a histogram."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self._child(metric_name, labels).observe(time.perf_counter() - start)

    def increment_counter(self, metric_name: str, amount: float = 1, **labels):
        self._child(metric_name, labels).inc(amount)

    def set_gauge(self, metric_name: str, value: float, **labels):
        self._child(metric_name, labels).set(value)

    def _child(self, metric_name: str, labels: Dict[str, Any]):
        metric = self._metrics[metric_name]
        return metric.labels(**labels) if labels else metric


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
