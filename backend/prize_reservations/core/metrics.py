"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Reservation metrics
reservation_attempts = Counter(
    'reservation_attempts_total',
    'Total ticket reservation attempts',
    ['result']  # success, conflict, error
)

reservation_latency = Histogram(
    'reservation_latency_seconds',
    'Ticket reservation latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

lock_rollbacks = Counter(
    'ticket_lock_rollbacks_total',
    'Locks deleted while rolling back a partially acquired reservation'
)

reservations_released = Counter(
    'reservations_released_total',
    'Reservations explicitly released',
    ['reason']  # user_cancelled, order_completed, extend_conflict
)

# Rate limiting metrics
rate_limit_decisions = Counter(
    'rate_limit_decisions_total',
    'Rate limiter decisions',
    ['bucket', 'result']  # allowed, rejected
)

# Skill question metrics
skill_question_attempts = Counter(
    'skill_question_attempts_total',
    'Skill question submissions',
    ['result']  # correct, incorrect, blocked
)

# Store metrics
store_errors = Counter(
    'store_errors_total',
    'Key-value store errors',
    ['operation']
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


def record_rate_limit(bucket: str, allowed: bool):
    result = "allowed" if allowed else "rejected"
    rate_limit_decisions.labels(bucket=bucket, result=result).inc()


def record_skill_question(result: str):
    """Record skill question outcome. Result: correct, incorrect, blocked"""
    skill_question_attempts.labels(result=result).inc()


def record_store_error(operation: str):
    store_errors.labels(operation=operation).inc()
