"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total booking attempts',
    ['outcome']  # success, conflict, unavailable, retry
)

booking_latency = Histogram(
    'booking_latency_seconds',
    'Booking creation latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# State machine metrics
booking_transitions = Counter(
    'booking_transitions_total',
    'Booking state transitions',
    ['event', 'result']  # result: applied, rejected, stale
)

# Ledger metrics
ledger_operations = Counter(
    'ledger_operations_total',
    'Credit ledger operations',
    ['operation', 'result']  # debit/refund/grant, applied/replay/insufficient
)

# Sweeper metrics
sweeper_runs = Counter(
    'sweeper_runs_total',
    'Hold expiry sweeper runs',
    ['result']  # ok, failed
)

holds_expired = Counter(
    'holds_expired_total',
    'Soft-holds released by the sweeper'
)

sweeper_errors = Counter(
    'sweeper_booking_errors_total',
    'Per-booking failures during a sweep'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
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

# Convenience functions for instrumentation
def record_booking_attempt(outcome: str):
    """Record booking attempt. Outcome: success, conflict, unavailable, retry"""
    booking_attempts.labels(outcome=outcome).inc()

def record_transition(event: str, result: str):
    booking_transitions.labels(event=event, result=result).inc()

def record_ledger_operation(operation: str, result: str):
    ledger_operations.labels(operation=operation, result=result).inc()

def record_sweeper_run(ok: bool, expired: int = 0, errors: int = 0):
    sweeper_runs.labels(result="ok" if ok else "failed").inc()
    if expired:
        holds_expired.inc(expired)
    if errors:
        sweeper_errors.inc(errors)

def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
