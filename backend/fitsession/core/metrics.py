"""Prometheus metrics shared by the HTTP layer and the session service."""

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "fitsession_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "fitsession_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
SESSION_OPERATIONS = Counter(
    "fitsession_session_operations_total",
    "Session protocol operations by outcome",
    ["action", "outcome"],
)
DEFENSIVE_REVOCATIONS = Counter(
    "fitsession_defensive_revocations_total",
    "Sessions revoked because their token could not be used",
    ["reason"],
)
