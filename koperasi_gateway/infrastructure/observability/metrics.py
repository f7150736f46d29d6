"""Prometheus metrics for schedule projections, reconciliation sessions, and webhook performance"""

from prometheus_client import Counter, Histogram

# Schedule metrics
schedule_status_counter = Counter(
    "koperasi_schedule_status_total",
    "Schedule status projections served",
    ["next_action"],  # new_slot | partial_continuation | upgrade_adjusted | complete
)

transaction_counter = Counter(
    "koperasi_transaction_events_total",
    "Transaction log writes",
    ["status"],  # pending | approved | rejected
)

# Reconciliation metrics
reconciliation_counter = Counter(
    "koperasi_reconciliation_total",
    "Reconciliation session lifecycle outcomes",
    ["outcome"],  # started | completed | unbalanced | cancelled | conflict
)

reconciliation_toggle_counter = Counter(
    "koperasi_reconciliation_toggles_total",
    "Statement lines matched or unmatched",
    ["matched"],
)

# Webhook metrics
webhook_latency_histogram = Histogram(
    "webhook_latency_seconds",
    "Ledger webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "webhook_failures_total",
    "Failed webhook deliveries",
)

# Master data API metrics
master_data_failures_counter = Counter(
    "master_data_fetch_failures_total",
    "Failed master data API calls",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_next_action(is_complete: bool, is_partial_continuation: bool, is_upgrade_adjusted: bool) -> None:
    """Record which kind of next action a projection suggested"""
    if is_complete:
        kind = "complete"
    elif is_partial_continuation:
        kind = "partial_continuation"
    elif is_upgrade_adjusted:
        kind = "upgrade_adjusted"
    else:
        kind = "new_slot"
    schedule_status_counter.labels(next_action=kind).inc()


def record_reconciliation(outcome: str) -> None:
    reconciliation_counter.labels(outcome=outcome).inc()
