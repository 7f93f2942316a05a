"""
Metrics Collection with Prometheus.

Exposes quota and subscription metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    TRANSITION = "transition"
    ERROR_TYPE = "error_type"


class QuotaMetrics:
    """
    Centralized metrics for the quota API.

    Covers:
    - HTTP requests (rate, duration, in-flight)
    - Token ledger operations (rate, amount, outcome)
    - Subscription lifecycle transitions
    - Best-effort audit log failures
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "quota_service",
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
            "quota_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "quota_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "quota_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Token Ledger Metrics
        # ====================================================================
        self.token_operations_total = Counter(
            "quota_token_operations_total",
            "Token ledger operations by outcome",
            [MetricLabels.OPERATION, "success", MetricLabels.ERROR_TYPE],
        )

        self.token_amount = Histogram(
            "quota_token_amount",
            "Token amounts moved by successful ledger operations",
            [MetricLabels.OPERATION],
            buckets=(1, 5, 10, 25, 50, 100, 500, 1000, 5000, 10000, 50000),
        )

        self.token_balance_after = Histogram(
            "quota_token_balance_after",
            "Token balance observed after a balance change (sample)",
            buckets=(0, 1, 10, 50, 100, 500, 1000, 5000, 10000, 50000),
        )

        # ====================================================================
        # Subscription Metrics
        # ====================================================================
        self.subscription_transitions_total = Counter(
            "quota_subscription_transitions_total",
            "Subscription lifecycle transitions",
            [MetricLabels.TRANSITION, "plan_type"],
        )

        # ====================================================================
        # Best-effort side channels
        # ====================================================================
        self.audit_log_failures_total = Counter(
            "quota_audit_log_failures_total",
            "Token transaction inserts that failed after the balance was committed",
            ["transaction_type"],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "quota_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

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

    def record_token_operation(
        self, operation: str, success: bool, amount: int = 0, error_type: str | None = None
    ) -> None:
        """Record a ledger operation (deduct, grant, reset)."""
        self.token_operations_total.labels(
            operation=operation, success=str(success), error_type=error_type or "none"
        ).inc()
        if success:
            self.token_amount.labels(operation=operation).observe(amount)

    def record_balance(self, balance_after: int) -> None:
        """Sample a post-mutation balance."""
        self.token_balance_after.observe(balance_after)

    def record_transition(self, transition: str, plan_type: str) -> None:
        """Record a subscription lifecycle transition."""
        self.subscription_transitions_total.labels(
            transition=transition, plan_type=plan_type
        ).inc()

    def record_audit_failure(self, transaction_type: str) -> None:
        """Record an audit log insert that was dropped."""
        self.audit_log_failures_total.labels(transaction_type=transaction_type).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = QuotaMetrics()
