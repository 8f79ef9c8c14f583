"""
Prometheus Metrics
==================
Counters for the ingestion and alerting pipeline.
"""

from prometheus_client import Counter, Histogram

EVENTS_INGESTED_TOTAL = Counter(
    "apimetrics_events_ingested_total",
    "Usage events accepted (after de-duplication)",
)

EVENTS_DUPLICATE_TOTAL = Counter(
    "apimetrics_events_duplicate_total",
    "Usage events ignored because their id was already stored",
)

BATCHES_REJECTED_TOTAL = Counter(
    "apimetrics_batches_rejected_total",
    "Ingestion batches rejected by validation",
)

AGGREGATION_FAILURES_TOTAL = Counter(
    "apimetrics_aggregation_failures_total",
    "Batches whose daily stats merge failed after the raw insert",
)

ALERTS_EVALUATED_TOTAL = Counter(
    "apimetrics_alerts_evaluated_total",
    "Alert evaluations",
    ["type"],
)

ALERTS_TRIGGERED_TOTAL = Counter(
    "apimetrics_alerts_triggered_total",
    "Alerts whose metric met the threshold",
    ["type"],
)

NOTIFICATIONS_TOTAL = Counter(
    "apimetrics_notifications_total",
    "Notification delivery attempts",
    ["channel", "outcome"],
)

SWEEP_DURATION_SECONDS = Histogram(
    "apimetrics_alert_sweep_duration_seconds",
    "Duration of a full alert sweep",
    buckets=(0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0),
)
