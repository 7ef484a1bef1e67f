"""Handler for the AuthServer CRD and its managed Ingress."""

from __future__ import annotations

import threading
from typing import Any

import kopf
from kubernetes import client

from .. import metrics
from ..builders.ingress import ingress_name
from ..builders.owner import create_owner_spec_from_spec, referenced_tls_secrets
from ..config import OperatorConfig, get_config
from ..constants import (
    API_GROUP_VERSION,
    INGRESS_GROUP_VERSION,
    INGRESS_SUFFIX,
    KIND_AUTH_SERVER,
    LABEL_INSTANCE,
    LABEL_MANAGED_BY,
    OPERATOR_NAME,
)
from ..models import OwnerIdentity, OwnerSpec, ReconcileOutcome, ReconcileState
from ..reconciler import ACTION_FAILED, IngressReconciler
from ..services.store import IngressStore, KubernetesIngressStore
from ..status import StatusReporter, current_state
from ..tracing import trace_span
from ..utils.errors import OwnerSpecError
from ..utils.events import emit_validate_succeeded
from ..utils.gate import ReconcileGate
from ..utils.retry import RetryPolicy
from ..utils.secrets import verify_tls_secrets
from .base import BaseHandler
from .shared import get_auth_server, get_core_api, get_k8s_client, get_networking_api

# Upper bound on waiting for an in-flight reconcile before tearing down
TEARDOWN_WAIT_SECONDS = 30.0


class AuthServerHandler(BaseHandler):
    """Handler for AuthServer resources: keeps their Ingress reconciled."""

    def __init__(
        self,
        config: OperatorConfig | None = None,
        store: IngressStore | None = None,
        reporter: StatusReporter | None = None,
        core_api: client.CoreV1Api | None = None,
        gate: ReconcileGate | None = None,
    ):
        """Initialize AuthServer handler.

        Kubernetes clients are created lazily so importing the handler never
        needs cluster access.
        """
        super().__init__(KIND_AUTH_SERVER)
        self.config = config or get_config()
        self.reconciler = IngressReconciler(
            retry_policy=RetryPolicy.from_config(self.config),
            conflict_retries=self.config.conflict_retries,
            garbage_collect=self.config.gc_via_owner_references,
        )
        self.gate = gate or ReconcileGate()
        self._store = store
        self._reporter = reporter
        self._core_api = core_api

    @property
    def store(self) -> IngressStore:
        if self._store is None:
            self._store = KubernetesIngressStore(get_networking_api())
        return self._store

    @property
    def reporter(self) -> StatusReporter:
        if self._reporter is None:
            self._reporter = StatusReporter(get_k8s_client())
        return self._reporter

    @property
    def core_api(self) -> client.CoreV1Api:
        if self._core_api is None:
            self._core_api = get_core_api()
        return self._core_api

    def load_owner_spec(self, spec: dict[str, Any], namespace: str) -> OwnerSpec:
        """Parse and validate the owner spec, including referenced TLS secrets.

        Raises:
            OwnerSpecError: If the spec is invalid
        """
        owner_spec = create_owner_spec_from_spec(spec)
        # Disabling must always work, even with a broken TLS reference
        if owner_spec.enabled:
            verify_tls_secrets(self.core_api, namespace, referenced_tls_secrets(spec))
        return owner_spec

    def reconcile(
        self,
        body: dict[str, Any],
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch | None,
        only_report_changes: bool = False,
    ) -> ReconcileOutcome | None:
        """Reconcile the Ingress of one AuthServer.

        Args:
            body: AuthServer body
            spec: AuthServer spec
            meta: AuthServer metadata
            status: AuthServer status
            patch: kopf patch, None when triggered by an Ingress event
            only_report_changes: Skip the status write when nothing changed

        Returns:
            The outcome, or None when the trigger was coalesced
        """
        owner = OwnerIdentity.from_meta(meta)
        if self.gate.is_terminated(owner.key):
            self.log_info(meta, "Owner is being deleted, skipping reconcile", reason="Terminated")
            return None

        generation = meta.get("generation")
        previous = current_state(status)

        with trace_span("reconcile_auth_server", kind=self.kind, attributes={"authserver.name": owner.name}):
            try:
                owner_spec = self.load_owner_spec(spec, owner.namespace)
            except OwnerSpecError as e:
                error_msg = self.handle_validation_error(body, meta, e)
                outcome = ReconcileOutcome(
                    state=ReconcileState.DEGRADED,
                    detail=error_msg,
                    action=ACTION_FAILED,
                    ingress_name=ingress_name(owner).name,
                    error_type=type(e).__name__,
                )
                self.reporter.report(
                    owner, outcome, patch=patch, status=status, generation=generation, spec_invalid=True
                )
                return outcome

            emit_validate_succeeded(body)

            caller = threading.get_ident()

            def run_pass() -> ReconcileOutcome:
                outcome = self.reconciler.reconcile(self.store, owner, owner_spec, previous)
                if only_report_changes and outcome.writes == 0 and outcome.state is previous:
                    return outcome
                # A coalesced pass runs on another trigger's thread after this handler
                # returned, so its kopf patch is no longer applied
                own_patch = patch if threading.get_ident() == caller else None
                self.reporter.report(owner, outcome, patch=own_patch, status=status, body=body, generation=generation)
                return outcome

            outcome = self.gate.run(owner.key, run_pass)
            if outcome is None:
                metrics.coalesced_triggers_total.labels(kind=self.kind).inc()
                self.log_info(meta, "Trigger coalesced into in-flight reconcile", reason="Coalesced")
            return outcome

    def on_ingress_event(self, meta: dict[str, Any], event_type: str | None) -> ReconcileOutcome | None:
        """Re-reconcile the owner of a managed Ingress that changed or vanished.

        Only the Ingress carrying the derived name of its owner is considered;
        anything else with our labels is left alone.
        """
        owner_name = (meta.get("labels") or {}).get(LABEL_INSTANCE)
        namespace = meta.get("namespace", "default")
        if not owner_name or meta.get("name") != f"{owner_name}{INGRESS_SUFFIX}":
            return None

        try:
            owner_obj = get_auth_server(get_k8s_client(), owner_name, namespace)
        except client.exceptions.ApiException as e:
            if e.status == 404:
                self.log_info(meta, f"Owner {owner_name} of Ingress {meta.get('name')} is gone", reason="OwnerGone")
                return None
            raise

        owner_meta = owner_obj.get("metadata", {})
        if owner_meta.get("deletionTimestamp"):
            return None
        if self.gate.is_terminated(OwnerIdentity.from_meta(owner_meta).key):
            return None

        self.log_info(owner_meta, f"Managed Ingress event {event_type}", reason="IngressEvent")
        return self.reconcile_with_metrics(
            owner_obj,
            owner_meta,
            lambda: self.reconcile(
                owner_obj,
                owner_obj.get("spec", {}),
                owner_meta,
                owner_obj.get("status", {}),
                patch=None,
                only_report_changes=True,
            ),
        )

    def delete(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        """Handle AuthServer deletion: stop reconciling, then release the Ingress."""
        owner = OwnerIdentity.from_meta(meta)
        self.gate.terminate(owner.key)

        if self.config.gc_via_owner_references:
            self.log_info(meta, "Ingress is left to Kubernetes garbage collection", event="deletion", reason="Deletion")
            self.remove_finalizer(meta, patch)
            return

        # Let the in-flight store call finish before issuing the terminal delete
        if not self.gate.wait_idle(owner.key, timeout=TEARDOWN_WAIT_SECONDS):
            raise kopf.TemporaryError("Reconcile still in flight, retrying deletion", delay=5)

        outcome = self.reconciler.teardown(self.store, owner)
        if outcome.state is ReconcileState.DEGRADED:
            self.log_error(meta, outcome.detail, event="deletion", reason="DeletionFailed")
            raise kopf.TemporaryError(outcome.detail, delay=10)

        self.log_info(meta, outcome.detail, event="deletion", reason="IngressDeleted", ingress_name=outcome.ingress_name)
        self.remove_finalizer(meta, patch)


_config = get_config()

# Global handler instance
_handler = AuthServerHandler(_config)


@kopf.on.create(API_GROUP_VERSION, KIND_AUTH_SERVER)
@kopf.on.update(API_GROUP_VERSION, KIND_AUTH_SERVER)
@kopf.on.resume(API_GROUP_VERSION, KIND_AUTH_SERVER)
@kopf.timer(API_GROUP_VERSION, KIND_AUTH_SERVER, interval=_config.resync_interval_seconds)
def handle_auth_server(
    body: kopf.Body,
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle AuthServer reconciliation (changes, resume and periodic resync)."""
    if not _config.gc_via_owner_references:
        _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(
        body, meta, lambda: _handler.reconcile(body, spec, meta, status, patch)
    )


@kopf.on.event(INGRESS_GROUP_VERSION, "ingresses", labels={LABEL_MANAGED_BY: OPERATOR_NAME})
def handle_managed_ingress_event(meta: dict[str, Any], **kwargs: Any) -> None:
    """Heal external edits or deletion of a managed Ingress."""
    _handler.on_ingress_event(meta, kwargs.get("type"))


@kopf.on.delete(API_GROUP_VERSION, KIND_AUTH_SERVER, optional=True)
def handle_auth_server_delete(
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle AuthServer deletion."""
    _handler.delete(meta, patch)
