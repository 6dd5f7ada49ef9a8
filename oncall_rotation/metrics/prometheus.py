# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Prometheus metrics: single source of truth for all metric objects.
Imported by services and middleware. Never instantiated in controllers.
"""

from prometheus_client import Counter, Gauge, Histogram

# ── HTTP Metrics (used by middleware) ──
REQUEST_COUNT = Counter(
    "rotation_requests_total",
    "Total HTTP requests to the rotation service",
    ["method", "endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "rotation_request_duration_seconds",
    "Request latency in seconds",
    ["method", "endpoint"],
)
HTTP_ERRORS = Counter(
    "rotation_http_errors_total",
    "Total HTTP error responses",
    ["method", "endpoint", "status"],
)

# ── Business Metrics (updated by service layer only) ──
DIRECT_MESSAGES_SENT = Counter(
    "rotation_direct_messages_sent_total",
    "Direct messages delivered to users",
)
DISPATCH_FAILURES = Counter(
    "rotation_dispatch_failures_total",
    "Chat-platform calls that failed after all retries",
    ["operation"],
)
TRANSITIONS_TOTAL = Counter(
    "rotation_transitions_total",
    "CurrentState transitions written",
    ["trigger"],
)
CHECK_RUNS = Counter(
    "rotation_check_runs_total",
    "Scheduler check runs by outcome",
    ["check", "outcome"],
)
RECONCILE_WRITES = Counter(
    "rotation_reconcile_writes_total",
    "Reconcile passes that corrected drifted state",
)
PIPELINE_RESULTS = Counter(
    "rotation_pipeline_results_total",
    "Notification pipeline invocations by result",
    ["result"],
)
HANDOFF_WARNINGS_SENT = Counter(
    "rotation_handoff_warnings_total",
    "End-of-day handoff warnings sent",
    ["role"],
)
APPROVED_OVERRIDES = Gauge(
    "rotation_approved_overrides",
    "Number of approved overrides",
)
