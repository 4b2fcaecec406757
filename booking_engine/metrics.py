"""
Prometheus metrics for reservations, hold expiry, calendar sync and collaborator calls.

Metrics are exposed via the /metrics endpoint for scraping by Prometheus.

Example:
    >>> from booking_engine.metrics import calendar_syncs, ical_fetch_latency
    >>> with ical_fetch_latency.time():
    ...     body = fetch_ical(url)
    >>> calendar_syncs.labels(platform="AIRBNB", status="success").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# =============================================================================
# Reservation Metrics
# =============================================================================

reservations_created = Counter(
    "booking_reservations_created_total",
    "Total number of reservations admitted as holds",
)

reservation_conflicts = Counter(
    "booking_reservation_conflicts_total",
    "Total number of reservation attempts rejected because the dates were taken",
    ["stage"],
)
"""
Labels:
    stage: Where the conflict was detected (precheck, allocation, serialization)
"""

reservation_cancellations = Counter(
    "booking_reservation_cancellations_total",
    "Total number of reservations cancelled by a guest or the owner",
    ["actor", "refunded"],
)

holds_expired = Counter(
    "booking_holds_expired_total",
    "Total number of unpaid holds cancelled by the expiry sweep",
)

# =============================================================================
# Calendar Sync Metrics
# =============================================================================

calendar_syncs = Counter(
    "booking_calendar_syncs_total",
    "Total number of external calendar sync attempts",
    ["platform", "status"],
)

calendar_events_imported = Counter(
    "booking_calendar_events_imported_total",
    "Total number of external calendar events imported as blocks",
    ["platform"],
)

ical_fetch_latency = Histogram(
    "booking_ical_fetch_latency_seconds",
    "External iCal feed fetch latency in seconds",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf")),
)

# =============================================================================
# Payment Collaborator Metrics
# =============================================================================

payment_requests = Counter(
    "booking_payment_requests_total",
    "Total payment processor requests made",
    ["operation", "status"],
)
"""
Labels:
    operation: verify, refund or charge
    status: success or failure
"""
