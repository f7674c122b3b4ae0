"""Prometheus metric inventory.

Every metric the service exports is declared here; the modules that own
the behavior import the metric and increment it at the point of action.

HTTP metrics are fed by MetricsMiddleware.  The progress metrics below
answer the operational questions this subsystem raises:

  - Are remote syncs failing?      progress_sync_failures_total
  - Is completion being detected?  completion_sequences_total
  - Are certificates going out?    certificates_issued_total
  - Are tabs racing each other?    certificate_duplicate_attempts_total
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Progress and certification
# ---------------------------------------------------------------------------

LESSON_COMPLETIONS = Counter(
    "lesson_completions_total",
    "Lessons newly recorded as complete",
    ["path"],  # "user_action" or "reconcile"
)

PROGRESS_SYNC_FAILURES = Counter(
    "progress_sync_failures_total",
    "Remote progress/enrollment/certificate calls that failed transiently",
    ["operation"],
)

COMPLETION_SEQUENCES = Counter(
    "completion_sequences_total",
    "Completion sequences started, by trigger",
    ["trigger"],  # "load", "user_action", "backfill"
)

CERTIFICATES_ISSUED = Counter(
    "certificates_issued_total",
    "Certificate records created",
    ["path"],  # "completion" or "manual"
)

CERTIFICATE_DUPLICATE_ATTEMPTS = Counter(
    "certificate_duplicate_attempts_total",
    "Create attempts absorbed because a certificate already existed",
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],
)
