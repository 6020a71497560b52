"""
Prometheus metrics configuration and collection.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

MESSAGES_PROCESSED = Counter(
    'honeytrack_messages_processed_total',
    'Total messages processed by the engine',
    ['sender']
)

SESSIONS_TERMINATED = Counter(
    'honeytrack_sessions_terminated_total',
    'Total conversations ended',
    ['reason']
)

ADVISORY_CALLS = Counter(
    'honeytrack_advisory_calls_total',
    'Total advisory service consultations',
    ['outcome']
)

ADVISORY_DURATION = Histogram(
    'honeytrack_advisory_duration_seconds',
    'Advisory service call duration in seconds'
)

ACTIVE_SESSIONS = Gauge(
    'honeytrack_active_sessions',
    'Number of active conversation trackers'
)

COMPLETED_SESSIONS = Gauge(
    'honeytrack_completed_sessions',
    'Number of completed conversation trackers awaiting sweep'
)

SESSIONS_SWEPT = Counter(
    'honeytrack_sessions_swept_total',
    'Total completed trackers removed by the sweep'
)


def get_metrics_response() -> Response:
    """Generate Prometheus metrics response."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


class MetricsCollector:
    """Helper class for collecting engine metrics."""

    @staticmethod
    def record_message(sender: str):
        MESSAGES_PROCESSED.labels(sender=sender).inc()

    @staticmethod
    def record_termination(reason: str):
        SESSIONS_TERMINATED.labels(reason=reason).inc()

    @staticmethod
    def record_advisory_call(outcome: str, duration: float):
        """Record one advisory consultation and its latency."""
        ADVISORY_CALLS.labels(outcome=outcome).inc()
        ADVISORY_DURATION.observe(duration)

    @staticmethod
    def update_session_counts(active: int, completed: int):
        ACTIVE_SESSIONS.set(active)
        COMPLETED_SESSIONS.set(completed)

    @staticmethod
    def record_sweep(removed: int):
        if removed:
            SESSIONS_SWEPT.inc(removed)
