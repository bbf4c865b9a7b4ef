"""Prometheus metric inventory for assessment-service.

All metrics live here so there is one place to see what the service
measures.  Modules import the metric they own and increment it at the
point of action; GET /metrics exposes the registry.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
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
# Assessment engine metrics
# ---------------------------------------------------------------------------

QUIZ_ATTEMPTS = Counter(
    "quiz_attempts_total",
    "Quiz attempt lifecycle transitions",
    ["outcome"],  # started|passed|failed|abandoned|expired
)

ASSIGNMENT_SUBMISSIONS = Counter(
    "assignment_submissions_total",
    "Assignment submission lifecycle transitions",
    ["outcome"],  # submitted|late|passed|failed|returned
)

CERTIFICATES = Counter(
    "certificates_total",
    "Certificate issuance and revocation",
    ["action"],  # issued|revoked
)

DOMAIN_ERRORS = Counter(
    "domain_errors_total",
    "Business-rule rejections surfaced to callers",
    ["kind"],
)

NOTIFICATIONS = Counter(
    "notifications_total",
    "Notification enqueue attempts by result",
    ["result"],  # queued|failed
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # hit|miss
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],  # notifications|grading
)

TASK_ENQUEUE_FAILURES = Counter(
    "task_enqueue_failures_total",
    "Background tasks that could not be queued",
    ["queue_name"],
)
