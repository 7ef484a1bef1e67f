"""Prometheus metrics for the AuthServer Operator."""

from prometheus_client import Counter, Histogram

# Reconciliation metrics
reconcile_total = Counter(
    "authserver_operator_reconcile_total",
    "Total number of reconciliations",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "authserver_operator_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["kind"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Ingress write metrics
ingress_operations_total = Counter(
    "authserver_operator_ingress_operations_total",
    "Total number of Ingress store operations",
    ["operation", "result"],
)

# Configuration drift detection metrics
drift_detected_total = Counter(
    "authserver_operator_drift_detected_total",
    "Total number of configuration drift detections",
    ["kind", "field"],
)

conflict_total = Counter(
    "authserver_operator_conflict_total",
    "Total number of optimistic concurrency conflicts",
    ["kind", "outcome"],
)

coalesced_triggers_total = Counter(
    "authserver_operator_coalesced_triggers_total",
    "Triggers folded into an in-flight reconcile of the same owner",
    ["kind"],
)

# API call metrics
api_call_total = Counter(
    "authserver_operator_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "authserver_operator_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)

rate_limit_hits_total = Counter(
    "authserver_operator_rate_limit_hits_total",
    "Total number of rate limit hits",
    ["api_type"],
)

retry_total = Counter(
    "authserver_operator_retry_total",
    "Total number of retries after transient store errors",
    ["operation"],
)

# Error and status metrics
error_total = Counter(
    "authserver_operator_error_total",
    "Total number of errors",
    ["kind", "error_type"],
)

resource_status_total = Counter(
    "authserver_operator_resource_status_total",
    "Reported resource states",
    ["kind", "status"],
)
