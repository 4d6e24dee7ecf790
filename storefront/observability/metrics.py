"""
Metrics Collection with Prometheus.

Exposes HTTP, authentication, session and payment metrics for monitoring.
"""

from enum import StrEnum

from prometheus_client import Counter, Gauge, Histogram, Info

from storefront.config import settings


class MetricLabels(StrEnum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"


class StorefrontMetrics:
    """
    Centralized metrics for the storefront API.

    Minimum viable metrics covering:
    - HTTP requests (rate, duration, in flight)
    - Logins (outcome of every provider callback)
    - Session store operations (rate, failures)
    - Payment orders and verifications
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "storefront_service",
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
            "storefront_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "storefront_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "storefront_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Authentication Metrics
        # ====================================================================
        self.logins_total = Counter(
            "storefront_logins_total",
            "Provider callbacks by final auth state",
            [MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Session Store Metrics
        # ====================================================================
        self.session_store_operations_total = Counter(
            "storefront_session_store_operations_total",
            "Session store operations",
            [MetricLabels.OPERATION, "success"],
        )

        # ====================================================================
        # Payment Metrics
        # ====================================================================
        self.payment_orders_total = Counter(
            "storefront_payment_orders_total",
            "Payment orders requested",
            ["success", MetricLabels.ERROR_TYPE],
        )

        self.payment_order_amount_minor = Histogram(
            "storefront_payment_order_amount_minor",
            "Order amounts in minor units (paise)",
            buckets=(1000, 5000, 10000, 50000, 100000, 500000, 1000000, 5000000),
        )

        self.payment_verifications_total = Counter(
            "storefront_payment_verifications_total",
            "Payment signature verifications by verdict",
            [MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "storefront_errors_total",
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

    def record_login(self, outcome: str) -> None:
        """Record the final state of a login attempt."""
        self.logins_total.labels(outcome=outcome).inc()

    def record_session_store(self, operation: str, success: bool) -> None:
        """Record a session store operation."""
        self.session_store_operations_total.labels(
            operation=operation, success=str(success)
        ).inc()

    def record_payment_order(
        self, success: bool, amount_minor: int | None = None, error_type: str | None = None
    ) -> None:
        """Record payment order creation metrics."""
        self.payment_orders_total.labels(success=str(success), error_type=error_type or "none").inc()
        if success and amount_minor is not None:
            self.payment_order_amount_minor.observe(amount_minor)

    def record_payment_verification(self, outcome: str) -> None:
        """Record a signature verification verdict."""
        self.payment_verifications_total.labels(outcome=outcome).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = StorefrontMetrics()
