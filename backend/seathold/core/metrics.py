"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# Reservation metrics
reservation_attempts = Counter(
    'seat_reservation_attempts_total',
    'Total seat reservation attempts',
    ['result']  # success, conflict, error
)

reservation_latency = Histogram(
    'seat_reservation_latency_seconds',
    'Seat reservation latency',
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5]
)

active_holds = Gauge(
    'seat_holds_active',
    'Number of live reservation sessions'
)

hold_expirations = Counter(
    'seat_hold_expirations_total',
    'Reservation sessions released by the expiry timer'
)

# Booking metrics
booking_transitions = Counter(
    'booking_transitions_total',
    'Booking state transitions',
    ['status']  # target state
)

payment_captures = Counter(
    'payment_captures_total',
    'Payment capture attempts',
    ['result']  # success, declined
)

# Availability synchronizer metrics
sync_polls = Counter(
    'seat_map_polls_total',
    'Seat map reconciliation polls',
    ['result']  # ok, refetch, stale
)

seat_events_dropped = Counter(
    'seat_events_dropped_total',
    'Seat status events dropped because a subscriber buffer was full'
)

# Seat gate (Redis) metrics
redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)

redis_circuit_breaker_open = Gauge(
    'redis_circuit_breaker_open',
    'Redis circuit breaker state (1=open, 0=closed)'
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_reservation_attempt(result: str):
    """Record reservation attempt. Result: success, conflict, error"""
    reservation_attempts.labels(result=result).inc()


def record_booking_transition(status: str):
    booking_transitions.labels(status=status).inc()


def record_payment_capture(success: bool):
    payment_captures.labels(result="success" if success else "declined").inc()


def record_sync_poll(result: str):
    """Record synchronizer poll. Result: ok, refetch, stale"""
    sync_polls.labels(result=result).inc()
