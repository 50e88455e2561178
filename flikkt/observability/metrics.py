"""
Metrics Collection with Prometheus.

Exposes analysis, quota and HTTP metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from flikkt.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"


class AnalysisMetrics:
    """
    Centralized metrics for the Flikkt API.

    Covers:
    - HTTP requests (rate, duration, in-flight)
    - Analyses by outcome (completed, fallback, no_medications, demo, scan_limit)
    - LLM calls (duration, success/failure)
    - Best-effort side effects that failed
    """

    def __init__(self) -> None:
        self.service_info = Info(
            "flikkt_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "flikkt_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "flikkt_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        self.http_requests_in_progress = Gauge(
            "flikkt_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Analysis Metrics
        # ====================================================================
        self.analyses_total = Counter(
            "flikkt_analyses_total",
            "Total analyses by outcome",
            [MetricLabels.OUTCOME, "analysis_kind"],
        )

        self.llm_call_duration_seconds = Histogram(
            "flikkt_llm_call_duration_seconds",
            "LLM completion call duration in seconds",
            ["model"],
            buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 40.0, 60.0),
        )

        self.llm_calls_total = Counter(
            "flikkt_llm_calls_total",
            "Total LLM completion calls",
            ["model", "success"],
        )

        self.side_effect_failures_total = Counter(
            "flikkt_side_effect_failures_total",
            "Best-effort steps that failed and were skipped",
            [MetricLabels.OPERATION],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "flikkt_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_analysis(self, outcome: str, analysis_kind: str) -> None:
        self.analyses_total.labels(outcome=outcome, analysis_kind=analysis_kind).inc()

    def record_llm_call(self, model: str, success: bool, duration: float) -> None:
        self.llm_calls_total.labels(model=model, success=str(success)).inc()
        self.llm_call_duration_seconds.labels(model=model).observe(duration)

    def record_side_effect_failure(self, operation: str) -> None:
        self.side_effect_failures_total.labels(operation=operation).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = AnalysisMetrics()
