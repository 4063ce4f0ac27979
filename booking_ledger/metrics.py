"""
Prometheus metrics for the reservation ledger and external calendar sync.

Metrics are exposed via the /metrics endpoint for scraping by Prometheus.

Metric Types:
    - Counter: Cumulative metrics that only increase (e.g., reservations created)
    - Histogram: Observations bucketed by value (e.g., marketplace API latency)
    - Gauge: Point-in-time value that can go up or down (e.g., queued sync failures)

Example:
    >>> from booking_ledger.metrics import platform_sync_total
    >>> platform_sync_total.labels(platform="airbnb", action="block", status="success").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Ledger Metrics
# =============================================================================

reservations_created = Counter(
    "booking_reservations_created_total",
    "Total number of reservations committed to the ledger",
    ["payment_method"],
)
"""
Counter for committed reservations.

Labels:
    payment_method: stripe, bank_transfer or none
"""

reservation_conflicts = Counter(
    "booking_reservation_conflicts_total",
    "Total number of reservation attempts rejected for overlapping dates",
)

reservation_rejections = Counter(
    "booking_reservation_rejections_total",
    "Reservation requests rejected before reaching the ledger",
    ["code"],
)
"""
Counter for rejected reservation requests.

Labels:
    code: Error code (invalid-argument, permission-denied, not-found, ...)
"""

transaction_retries = Counter(
    "booking_transaction_retries_total",
    "Serializable transactions retried after a serialization failure",
)

cancellations = Counter(
    "booking_cancellations_total",
    "Guest cancellation calls by outcome",
    ["outcome"],
)
"""
Counter for guest cancellations.

Labels:
    outcome: cancelled, replayed or rejected
"""

refunds = Counter(
    "booking_refunds_total",
    "External refund attempts by status",
    ["status"],
)

reservations_completed = Counter(
    "booking_reservations_completed_total",
    "Reservations moved to completed by the checkout sweep",
)

reservations_expired = Counter(
    "booking_reservations_expired_total",
    "Unpaid reservations released by the payment deadline sweep",
    ["payment_method"],
)

# =============================================================================
# Access Token Metrics
# =============================================================================

token_verifications = Counter(
    "booking_token_verifications_total",
    "Guest access token verification attempts",
    ["result"],
)
"""
Counter for access token verifications.

Labels:
    result: valid or invalid (the reason is never recorded)
"""

rate_limited_calls = Counter(
    "booking_rate_limited_calls_total",
    "Calls refused by the rate limiter",
    ["operation"],
)

# =============================================================================
# Sync Metrics
# =============================================================================

platform_sync_total = Counter(
    "booking_platform_sync_total",
    "Outbound availability pushes to marketplaces",
    ["platform", "action", "status"],
)
"""
Counter for outbound sync attempts.

Labels:
    platform: booking_com or airbnb
    action: block or unblock
    status: success or failure
"""

sync_failures_recorded = Counter(
    "booking_sync_failures_recorded_total",
    "Failed sync attempts written to the retry queue",
    ["platform"],
)

sync_retries = Counter(
    "booking_sync_retries_total",
    "Retry attempts processed by the scheduler",
    ["platform", "status"],
)

sync_retries_exhausted = Counter(
    "booking_sync_retries_exhausted_total",
    "Sync failures that reached the retry ceiling and were escalated to the owner",
    ["platform"],
)

sync_failures_pending = Gauge(
    "booking_sync_failures_pending",
    "Sync failure records due at the start of the last retry pass",
)

retry_pass_duration = Histogram(
    "booking_retry_pass_duration_seconds",
    "Duration of one retry scheduler pass in seconds",
    buckets=(0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, float("inf")),
)

# =============================================================================
# Marketplace API Metrics
# =============================================================================

api_requests = Counter(
    "booking_platform_api_requests_total",
    "Total marketplace API requests made",
    ["platform", "endpoint", "status_code"],
)
"""
Counter for API requests to marketplaces.

Labels:
    platform: booking_com or airbnb
    endpoint: Logical endpoint name (availability, calendar, reservations, token)
    status_code: HTTP status code (e.g., "200", "401", "429")
"""

api_latency = Histogram(
    "booking_platform_api_latency_seconds",
    "Marketplace API request latency in seconds",
    ["platform", "endpoint"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf")),
)

credential_cache_hits = Counter(
    "booking_credential_cache_hits_total",
    "Total number of marketplace credential cache hits",
)

credential_cache_misses = Counter(
    "booking_credential_cache_misses_total",
    "Total number of marketplace credential cache misses",
)

credential_refreshes = Counter(
    "booking_credential_refreshes_total",
    "Marketplace credential refresh operations",
    ["platform", "status"],
)
