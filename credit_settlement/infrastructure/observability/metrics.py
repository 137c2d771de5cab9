"""Prometheus metrics for credit decisions, onboarding, settlement and notifications"""

from prometheus_client import Counter, Histogram

# Credit metrics
credit_decision_counter = Counter(
    "credit_purchase_decision_total",
    "Credit purchase evaluations",
    ["outcome"],  # approved | limit_exceeded | below_minimum | above_maximum | not_approved
)

credit_utilization_histogram = Histogram(
    "credit_utilization_percent",
    "Vendor credit utilization after an approved purchase",
    buckets=[10, 25, 50, 80, 90, 100],
)

# Onboarding metrics
geofence_counter = Counter(
    "vendor_geofence_check_total",
    "Vendor exclusivity checks",
    ["outcome"],  # registered | approved | vendor_exists
)

# Settlement metrics
repayment_counter = Counter(
    "credit_repayment_total",
    "Repayments recorded",
    ["tier_type"],  # discount | interest | neutral | agreement
)

earnings_counter = Counter(
    "vendor_earnings_total",
    "Delivery earnings outcomes",
    ["outcome"],  # recorded | existing | ineligible | no_difference
)

# Lifecycle metrics
lifecycle_notification_counter = Counter(
    "lifecycle_notifications_total",
    "Notifications emitted by lifecycle transitions",
    ["type"],
)

stale_write_retry_counter = Counter(
    "stale_write_retries_total",
    "Transactions retried after a write conflict",
    ["operation"],
)

# Dispatcher metrics
dispatch_latency_histogram = Histogram(
    "notification_dispatch_latency_seconds",
    "Notification dispatcher response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

dispatch_failure_counter = Counter(
    "notification_dispatch_failures_total",
    "Failed notification deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_credit_decision(outcome: str, utilization_percent: float | None = None) -> None:
    """Record decision metrics for monitoring approval rates and utilization"""
    credit_decision_counter.labels(outcome=outcome).inc()
    if utilization_percent is not None:
        credit_utilization_histogram.observe(utilization_percent)
