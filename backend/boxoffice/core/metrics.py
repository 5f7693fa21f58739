"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Hold metrics
hold_attempts = Counter(
    'seat_hold_attempts_total',
    'Total seat hold attempts',
    ['result']  # success, conflict, error
)

hold_latency = Histogram(
    'seat_hold_latency_seconds',
    'Seat hold request latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

seats_held = Counter(
    'seats_held_total',
    'Seats placed on hold'
)

# Payment metrics
payment_notifications = Counter(
    'payment_notifications_total',
    'Payment notifications received',
    ['channel', 'outcome']  # processed, already_processed, ignored, rejected
)

# Sweeper metrics
locks_released = Counter(
    'seat_locks_released_total',
    'Expired seat holds released by sweeps'
)

orders_expired = Counter(
    'orders_expired_total',
    'Pending orders expired by sweeps'
)

sweep_runs = Counter(
    'sweep_runs_total',
    'Expiry sweep executions',
    ['trigger']  # schedule, manual
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

# Email metrics
emails_sent = Counter(
    'ticket_emails_total',
    'Ticket emails attempted',
    ['result']  # sent, failed
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_hold_attempt(status: str, seat_count: int = 0):
    """Record hold attempt. Status: success, conflict, error"""
    hold_attempts.labels(result=status).inc()
    if status == "success" and seat_count:
        seats_held.inc(seat_count)


def record_payment_notification(channel: str, outcome: str):
    payment_notifications.labels(channel=channel, outcome=outcome).inc()


def record_sweep(trigger: str, released: int, expired: int):
    sweep_runs.labels(trigger=trigger).inc()
    if released:
        locks_released.inc(released)
    if expired:
        orders_expired.inc(expired)


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()


def record_email(sent: bool):
    emails_sent.labels(result="sent" if sent else "failed").inc()
