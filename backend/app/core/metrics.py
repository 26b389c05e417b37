"""Prometheus metric definitions for the Freeboard API."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Info

# ── Application info ────────────────────────────────────────────────
app_info = Info("freeboard", "Freeboard API application metadata")

# ── HTTP request metrics ────────────────────────────────────────────
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

http_requests_in_progress = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently being processed",
    ["method"],
)

# ── Database pool metrics ───────────────────────────────────────────
db_pool_size = Gauge("db_pool_size", "Current number of connections in the pool")
db_pool_checked_in = Gauge("db_pool_checked_in", "Connections currently idle in the pool")
db_pool_checked_out = Gauge("db_pool_checked_out", "Connections currently in use")
db_pool_overflow = Gauge("db_pool_overflow", "Current overflow connections beyond pool_size")

# ── Sharing engine metrics ──────────────────────────────────────────
sharing_mutations_total = Counter(
    "sharing_mutations_total",
    "Committed dashboard sharing mutations",
    ["action"],
)

trust_gate_rejections_total = Counter(
    "trust_gate_rejections_total",
    "Dashboard payloads rejected because they introduce or alter trusted content",
)

audit_failures_total = Counter(
    "audit_failures_total",
    "Audit events that could not be persisted",
)

offboarding_dashboards_total = Counter(
    "offboarding_dashboards_total",
    "Dashboards rewritten while offboarding a user",
    ["outcome"],
)
