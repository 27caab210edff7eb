"""Prometheus metrics for the telemetry service."""

from shared.metrics import get_counter, get_gauge, get_histogram

SERVICE = "telemetry"

# Ingestion
HEARTBEATS_ACCEPTED = get_counter(
    "heartbeats_accepted_total", "Heartbeats validated and enqueued", SERVICE
)
HEARTBEATS_INVALID = get_counter(
    "heartbeats_invalid_total", "Heartbeats rejected by validation", SERVICE
)
RATE_LIMIT_REJECTIONS = get_counter(
    "rate_limit_rejections_total",
    "Requests rejected by the rate limiter",
    SERVICE,
    labelnames=("state",),
)
RATE_LIMIT_BANS = get_counter(
    "rate_limit_bans_total", "Identifiers escalated to a temporary ban", SERVICE
)

# Write queue
QUEUE_CURRENT_SIZE = get_gauge(
    "queue_current_size", "Heartbeats waiting in the write queue", SERVICE
)
HEARTBEAT_WRITES = get_counter(
    "heartbeat_writes_total", "Heartbeats upserted into the store", SERVICE
)
HEARTBEAT_WRITE_ERRORS = get_counter(
    "heartbeat_write_errors_total", "Heartbeat upserts dropped after a failure", SERVICE
)

# Rollups
ROLLUP_RUNS = get_counter(
    "rollup_runs_total", "Completed rollup jobs", SERVICE, labelnames=("granularity",)
)
ROLLUP_ERRORS = get_counter(
    "rollup_errors_total", "Failed rollup jobs", SERVICE, labelnames=("granularity",)
)
ROLLUP_LATENCY_SECONDS = get_histogram(
    "rollup_latency_seconds",
    "Duration of a rollup job",
    SERVICE,
    labelnames=("granularity",),
)
HEARTBEATS_SWEPT = get_counter(
    "heartbeats_swept_total", "Heartbeat rows deleted after aggregation", SERVICE
)
