"""
Shared metrics configuration for the offline cache service.
"""

from typing import Dict, Any, Optional
import time
import threading
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry, generate_latest


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # A private registry keeps repeated service construction (tests, reloads) free of
        # duplicate timeseries registration.
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_cache_worker_metrics()

    def _setup_cache_worker_metrics(self):
        """Set up offline cache worker metrics."""
        self._metrics["offline_cache_responses_total"] = Counter(
            "offline_cache_responses_total",
            "Responses produced by the cache worker",
            ["handling_class", "source"],
            registry=self.registry
        )

        self._metrics["offline_cache_write_failures_total"] = Counter(
            "offline_cache_write_failures_total",
            "Cache writes dropped after a storage failure",
            ["cache"],
            registry=self.registry
        )

        self._metrics["offline_cache_evictions_total"] = Counter(
            "offline_cache_evictions_total",
            "Stale cache generations deleted on activation",
            registry=self.registry
        )

        self._metrics["offline_cache_worker_state"] = Gauge(
            "offline_cache_worker_state",
            "Lifecycle state of each worker version (1 for the current state)",
            ["version", "state"],
            registry=self.registry
        )

        self._metrics["offline_cache_lifecycle_duration_seconds"] = Histogram(
            "offline_cache_lifecycle_duration_seconds",
            "Duration of worker install and activation",
            ["phase"],
            registry=self.registry
        )

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_worker_state(self, version: str, state: str, previous: Optional[str] = None):
        """Flip the state gauge for a worker version."""
        with self._lock:
            if previous:
                self._metrics["offline_cache_worker_state"].labels(version=version, state=previous).set(0)
            self._metrics["offline_cache_worker_state"].labels(version=version, state=state).set(1)

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            if operation_name in self._metrics:
                self._metrics[operation_name].labels(**labels).observe(duration)

    def increment_counter(self, metric_name: str, amount: float = 1, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            (metric.labels(**labels) if labels else metric).inc(amount)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
