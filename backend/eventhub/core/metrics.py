"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Admission control metrics
admission_decisions = Counter(
    'admission_decisions_total',
    'Participation requests handled by the admission controller',
    ['result']  # confirmed, pending, rejected, conflict
)

admission_retries = Counter(
    'admission_version_conflicts_total',
    'Admission retries caused by a concurrent version bump on the event'
)

admission_guard_wait = Histogram(
    'admission_guard_wait_seconds',
    'Time spent waiting for the per-event admission guard',
    ['strategy'],
    buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

request_transitions = Counter(
    'participation_request_transitions_total',
    'Participation request status transitions',
    ['status']  # CONFIRMED, REJECTED, CANCELED
)

# Event lifecycle metrics
event_transitions = Counter(
    'event_state_transitions_total',
    'Event state transitions',
    ['actor', 'state']  # actor: user, admin
)

# Stats collaborator metrics
stats_client_errors = Counter(
    'stats_client_errors_total',
    'Failed calls to the hit counter service',
    ['operation']  # record_hit, query_hits
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_admission(result: str):
    """Record admission decision. Result: confirmed, pending, rejected, conflict"""
    admission_decisions.labels(result=result).inc()


def record_request_transition(status: str, count: int = 1):
    if count:
        request_transitions.labels(status=status).inc(count)


def record_event_transition(actor: str, state: str):
    event_transitions.labels(actor=actor, state=state).inc()


def record_stats_error(operation: str):
    stats_client_errors.labels(operation=operation).inc()
