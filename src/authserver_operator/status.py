"""Reporting of reconcile outcomes on the AuthServer status."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import kopf
from kubernetes import client
from urllib3.exceptions import HTTPError as TransportError

from . import metrics
from .constants import (
    API_GROUP,
    API_VERSION,
    KIND_AUTH_SERVER,
    OPERATOR_NAME,
    PLURAL_AUTH_SERVER,
)
from .logging import log_resource_event
from .models import OwnerIdentity, ReconcileOutcome, ReconcileState
from .utils.conditions import (
    set_degraded_condition,
    set_ingress_ready_condition,
    set_ready_condition,
    set_spec_invalid_condition,
)
from .utils.errors import ConflictError, sanitize_error_message
from .utils.events import (
    emit_ingress_conflict,
    emit_ingress_created,
    emit_ingress_deleted,
    emit_ingress_updated,
    emit_reconcile_failed,
)

logger = logging.getLogger(__name__)


def build_status(
    outcome: ReconcileOutcome,
    status: dict[str, Any] | None = None,
    generation: int | None = None,
    spec_invalid: bool = False,
) -> dict[str, Any]:
    """Status fields describing ``outcome``.

    Args:
        outcome: Reconcile outcome
        status: Current owner status (for existing conditions)
        generation: Owner generation the outcome was computed from
        spec_invalid: Whether the outcome comes from a validation failure

    Returns:
        Partial status to merge into the owner
    """
    conditions = [dict(c) for c in (status or {}).get("conditions", [])]
    detail = sanitize_error_message(outcome.detail)

    if outcome.state is ReconcileState.READY:
        conditions = set_ingress_ready_condition(conditions, True, "IngressReady", detail, generation)
    elif outcome.state is ReconcileState.DISABLED:
        conditions = set_ingress_ready_condition(conditions, False, "IngressDisabled", detail, generation)
    else:
        conditions = set_ingress_ready_condition(conditions, False, "IngressDegraded", detail, generation)

    degraded = outcome.state is ReconcileState.DEGRADED
    conditions = set_degraded_condition(conditions, degraded, detail if degraded else "Ingress reconciled", generation)
    conditions = set_spec_invalid_condition(
        conditions, spec_invalid, detail if spec_invalid else "Spec is valid", generation
    )
    conditions = set_ready_condition(
        conditions,
        not degraded,
        "AuthServer exposure is reconciled" if not degraded else detail,
        generation,
    )

    ingress_status = {
        "state": outcome.state.value,
        "detail": detail,
        "name": outcome.ingress_name,
        "action": outcome.action,
        "resourceVersion": outcome.resource_version,
        "lastReconcileTime": datetime.now(timezone.utc).isoformat(),
    }

    status_update: dict[str, Any] = {"ingress": ingress_status, "conditions": conditions}
    if generation is not None:
        status_update["observedGeneration"] = generation
    return status_update


def current_state(status: dict[str, Any] | None) -> ReconcileState | None:
    """State last reported on the owner status, None if unknown."""
    value = ((status or {}).get("ingress") or {}).get("state")
    try:
        return ReconcileState(value) if value else None
    except ValueError:
        return None


class StatusReporter:
    """Surface reconcile outcomes (Ready, Degraded, Disabled) on the owner.

    Writing status is observability only: failures are logged and never
    raised back into the reconcile.
    """

    def __init__(self, api: client.CustomObjectsApi | None = None) -> None:
        self.api = api

    def report(
        self,
        owner: OwnerIdentity,
        outcome: ReconcileOutcome,
        patch: kopf.Patch | None = None,
        status: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        generation: int | None = None,
        spec_invalid: bool = False,
    ) -> None:
        """Record ``outcome`` on the owner status.

        Args:
            owner: Owner identity
            outcome: Reconcile outcome
            patch: kopf patch of the running handler; the API is used without one
            status: Current owner status
            body: Owner body, for Kubernetes events
            generation: Owner generation
            spec_invalid: Whether the outcome comes from a validation failure
        """
        metrics.resource_status_total.labels(kind=KIND_AUTH_SERVER, status=outcome.state.value).inc()
        status_update = build_status(outcome, status, generation, spec_invalid)

        try:
            if patch is not None:
                patch.status.update(status_update)
            elif self.api is not None:
                self.api.patch_namespaced_custom_object_status(
                    group=API_GROUP,
                    version=API_VERSION,
                    namespace=owner.namespace,
                    plural=PLURAL_AUTH_SERVER,
                    name=owner.name,
                    body={"status": status_update},
                )
        except client.exceptions.ApiException as e:
            self._log(owner, f"Failed to write status: {e.status} {e.reason}", logging.WARNING)
        except TransportError as e:
            self._log(owner, f"Failed to write status: {sanitize_error_message(str(e))}", logging.WARNING)

        if body is not None:
            self._emit(body, outcome)

        self._log(
            owner,
            f"Ingress {outcome.ingress_name}: {outcome.state.value} ({outcome.detail})",
            logging.WARNING if outcome.state is ReconcileState.DEGRADED else logging.INFO,
            state=outcome.state.value,
            action=outcome.action,
        )

    def _emit(self, body: dict[str, Any], outcome: ReconcileOutcome) -> None:
        if outcome.action == "created":
            emit_ingress_created(body, outcome.ingress_name)
        elif outcome.action == "updated":
            emit_ingress_updated(body, outcome.ingress_name, outcome.detail)
        elif outcome.action == "deleted":
            emit_ingress_deleted(body, outcome.ingress_name)
        elif outcome.state is ReconcileState.DEGRADED:
            if outcome.error_type == ConflictError.__name__:
                emit_ingress_conflict(body, outcome.detail)
            else:
                emit_reconcile_failed(body, outcome.detail)

    def _log(self, owner: OwnerIdentity, message: str, level: int, **kwargs: Any) -> None:
        log_resource_event(
            logger,
            controller=OPERATOR_NAME,
            resource_kind=KIND_AUTH_SERVER,
            resource_name=owner.name,
            namespace=owner.namespace,
            uid=owner.uid or "unknown",
            event="status",
            reason="StatusReported",
            message=message,
            level=level,
            **kwargs,
        )
