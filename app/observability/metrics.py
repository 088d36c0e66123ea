"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
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
    RESULT = "result"
    CACHE = "cache"
    ERROR_TYPE = "error_type"


class PromoCodeMetrics:
    """
    Centralized metrics for the Promo Code API.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Promo code validations and redemptions by outcome
    - Cache hit ratio per key family
    - Authentication outcomes
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "promo_service",
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
            "promo_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "promo_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "promo_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Promo Code Metrics
        # ====================================================================
        self.promo_validations_total = Counter(
            "promo_validations_total",
            "Promo code eligibility checks by outcome",
            [MetricLabels.RESULT],
        )

        self.promo_redemptions_total = Counter(
            "promo_redemptions_total",
            "Promo code redemptions by outcome",
            [MetricLabels.RESULT],
        )

        self.promo_codes_created_total = Counter(
            "promo_codes_created_total",
            "Total promo codes created",
        )

        self.promo_discount_amount = Histogram(
            "promo_discount_amount",
            "Discount amounts quoted by the validation endpoint",
            buckets=(1, 5, 10, 25, 50, 100, 250, 500, 1000),
        )

        # ====================================================================
        # Cache Metrics
        # ====================================================================
        self.cache_requests_total = Counter(
            "promo_cache_requests_total",
            "Cache lookups by key family and hit/miss",
            [MetricLabels.CACHE, MetricLabels.RESULT],
        )

        # ====================================================================
        # Auth Metrics
        # ====================================================================
        self.auth_attempts_total = Counter(
            "promo_auth_attempts_total",
            "Login and registration attempts by outcome",
            [MetricLabels.OPERATION, MetricLabels.RESULT],
        )

        self.rate_limited_total = Counter(
            "promo_rate_limited_total",
            "Requests rejected by the rate limiter",
            [MetricLabels.ENDPOINT],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "promo_errors_total",
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

    def record_validation(self, result: str, discount: float | None = None) -> None:
        """Record a promo code eligibility check."""
        self.promo_validations_total.labels(result=result).inc()
        if discount is not None:
            self.promo_discount_amount.observe(discount)

    def record_redemption(self, result: str) -> None:
        """Record a promo code redemption attempt."""
        self.promo_redemptions_total.labels(result=result).inc()

    def record_cache(self, cache: str, hit: bool) -> None:
        """Record a cache lookup."""
        self.cache_requests_total.labels(cache=cache, result="hit" if hit else "miss").inc()

    def record_auth(self, operation: str, success: bool) -> None:
        """Record an authentication attempt."""
        self.auth_attempts_total.labels(
            operation=operation, result="success" if success else "failure"
        ).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = PromoCodeMetrics()
