"""Subscription metrics for Prometheus monitoring."""
from prometheus_client import Counter

# Lifecycle operations that reached the gateway (no-ops are not counted)
subscription_operations_total = Counter(
    "subscription_operations_total",
    "Total subscription lifecycle operations sent to the billing gateway",
    labelnames=["operation"],  # create, cancel, resume, swap, increment, decrement
)

# Info reads swallowed during refresh
subscription_info_fetch_failures_total = Counter(
    "subscription_info_fetch_failures_total",
    "Total gateway info fetches that failed during a refresh",
)
