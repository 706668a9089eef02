"""Prometheus metric inventory for the LMS API.

Every metric the service exports is declared here and incremented at the
point of action:

  http_*                          MetricsMiddleware, one sample per request
  progress_events_applied_total   services.progress_ledger
  quiz_submissions_total          services.quiz_grading
  certificates_issued_total       services.certificate_issuer
  payment_webhook_events_total    services.payment_events
  rate_limit_hits_total           api.ratelimit

Prometheus scrapes them from GET /metrics.
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
# Domain metrics
# ---------------------------------------------------------------------------

PROGRESS_EVENTS = Counter(
    "progress_events_applied_total",
    "Learner progress events applied to the progress ledger",
    ["type"],  # started|paused|seeked|completed|heartbeat
)

QUIZ_SUBMISSIONS = Counter(
    "quiz_submissions_total",
    "Graded quiz submissions by outcome",
    ["result"],  # passed|failed
)

CERTIFICATES_ISSUED = Counter(
    "certificates_issued_total",
    "Certificate upserts by mode",
    ["mode"],  # first|refresh|reissue
)

PAYMENT_WEBHOOK_EVENTS = Counter(
    "payment_webhook_events_total",
    "Payment provider webhook deliveries by outcome",
    ["outcome"],  # processed|duplicate|failed|rejected
)

RATE_LIMIT_HITS = Counter(
    "rate_limit_hits_total",
    "Requests rejected by rate limiting (429s)",
    ["key_type"],  # "user" or "ip"
)
