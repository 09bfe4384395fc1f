"""
Shared metrics configuration for the tenant gateway services.
"""

from typing import Dict, Any, Optional

from prometheus_client import Counter, Histogram, Info, CollectorRegistry, generate_latest


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns its registry, so several service instances can live
    in one process (tests, embedded use) without duplicate-series errors.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
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

        if self.service_name == "router":
            self._setup_router_metrics()
        elif self.service_name == "flags":
            self._setup_flags_metrics()

    def _setup_router_metrics(self):
        """Set up tenant router metrics."""
        self._metrics["tenant_requests_total"] = Counter(
            "tenant_requests_total",
            "Requests handled per tenant and outcome",
            ["tenant", "outcome"],
            registry=self.registry
        )

        self._metrics["rate_limit_denials_total"] = Counter(
            "rate_limit_denials_total",
            "Requests denied by the hourly rate limiter",
            ["tenant"],
            registry=self.registry
        )

        self._metrics["config_cache_total"] = Counter(
            "config_cache_total",
            "Tenant config lookups by cache layer and result",
            ["layer", "result"],
            registry=self.registry
        )

        self._metrics["usage_flushes_total"] = Counter(
            "usage_flushes_total",
            "Batched usage writes to the tenant registry",
            ["result"],
            registry=self.registry
        )

        self._metrics["upstream_errors_total"] = Counter(
            "upstream_errors_total",
            "Tenant backend transport failures",
            ["tenant"],
            registry=self.registry
        )

    def _setup_flags_metrics(self):
        """Set up feature flag metrics."""
        self._metrics["feature_flag_evaluations_total"] = Counter(
            "feature_flag_evaluations_total",
            "Feature flag evaluations by decision",
            ["flag", "decision"],
            registry=self.registry
        )

    def export(self) -> bytes:
        """Render this collector's registry in Prometheus text format."""
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

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
