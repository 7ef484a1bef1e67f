"""Utility functions for the AuthServer Operator."""

from .conditions import (
    set_degraded_condition,
    set_ingress_ready_condition,
    set_ready_condition,
    set_spec_invalid_condition,
    update_condition,
)
from .context import (
    get_context_dict,
    get_correlation_id,
    propagate_trace_context,
    set_correlation_id,
    with_correlation_id,
)
from .events import emit_event
from .rate_limit import rate_limit_k8s
from .secrets import verify_tls_secret

__all__ = [
    "update_condition",
    "set_ready_condition",
    "set_ingress_ready_condition",
    "set_degraded_condition",
    "set_spec_invalid_condition",
    "emit_event",
    "verify_tls_secret",
    "rate_limit_k8s",
    "get_correlation_id",
    "set_correlation_id",
    "with_correlation_id",
    "propagate_trace_context",
    "get_context_dict",
]
