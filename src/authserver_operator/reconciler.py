"""Fetch-compute-diff-apply reconciliation of the AuthServer Ingress."""

from __future__ import annotations

import copy
import logging
from typing import Any, Mapping, Sequence

from . import metrics
from .builders.annotations import (
    applied_custom_keys,
    decode_custom_keys,
    encode_custom_keys,
    merge_annotations,
)
from .builders.ingress import compute_desired_ingress, ingress_manifest, ingress_name, render_ingress_spec
from .constants import ANNOTATION_CUSTOM_KEYS, KIND_INGRESS, MANAGED_ANNOTATION_KEYS, OPERATOR_NAME
from .logging import log_resource_event
from .models import (
    DesiredIngress,
    LiveIngress,
    OwnerIdentity,
    OwnerSpec,
    ReconcileOutcome,
    ReconcileState,
    ResourceName,
)
from .services.store import IngressStore
from .tracing import add_span_attribute, trace_span
from .utils.errors import (
    ConflictError,
    NotFoundError,
    StoreError,
    StoreValidationError,
    TransientStoreError,
    sanitize_exception,
)
from .utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

# Ingress spec fields compared for drift
SPEC_FIELDS = ("ingressClassName", "rules", "defaultBackend", "tls")

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_UNCHANGED = "unchanged"
ACTION_DELETED = "deleted"
ACTION_ABSENT = "absent"
ACTION_FAILED = "failed"


def desired_annotations(
    desired: DesiredIngress,
    live_annotations: Mapping[str, str] | None,
) -> dict[str, str]:
    """Merge the desired annotations onto the live ones, tracking custom keys."""
    live_annotations = live_annotations or {}
    previous = decode_custom_keys(live_annotations.get(ANNOTATION_CUSTOM_KEYS))
    applied = applied_custom_keys(desired.custom_annotations, previous, MANAGED_ANNOTATION_KEYS)

    computed = dict(desired.annotations)
    if applied:
        computed[ANNOTATION_CUSTOM_KEYS] = encode_custom_keys(applied)

    return merge_annotations(
        MANAGED_ANNOTATION_KEYS,
        computed,
        desired.custom_annotations,
        live_annotations,
        previous,
    )


def merge_owner_references(
    live: Sequence[Mapping[str, Any]],
    desired: Sequence[Mapping[str, Any]],
) -> list[dict[str, Any]]:
    """Keep every live ownerReference and add ours when its uid is missing."""
    merged = [dict(ref) for ref in live]
    live_uids = {ref.get("uid") for ref in live}
    merged.extend(dict(ref) for ref in desired if ref.get("uid") not in live_uids)
    return merged


def plan_update(desired: DesiredIngress, live: LiveIngress) -> tuple[dict[str, Any], list[str]]:
    """Build the replacement manifest for ``live`` and list the drifted fields.

    Foreign labels, annotations and ownerReferences are carried over. When no
    class name is desired, a class set on the live object (by default-class
    admission) is kept and not reported as drift.

    Returns:
        Tuple of (manifest, drifted field names); no drift means no write.
    """
    spec = render_ingress_spec(desired)
    live_class = live.spec.get("ingressClassName")
    if desired.ingress_class_name is None and live_class:
        spec["ingressClassName"] = live_class

    labels = {**live.labels, **desired.labels}
    annotations = desired_annotations(desired, live.annotations)
    owner_refs = merge_owner_references(live.owner_references, desired.owner_references)

    drift = [field for field in SPEC_FIELDS if spec.get(field) != live.spec.get(field)]
    if labels != dict(live.labels):
        drift.append("labels")
    if annotations != dict(live.annotations):
        drift.append("annotations")
    if owner_refs != [dict(ref) for ref in live.owner_references]:
        drift.append("ownerReferences")

    manifest = copy.deepcopy(dict(live.raw)) if live.raw else ingress_manifest(desired, {})
    manifest.pop("status", None)
    metadata = manifest.setdefault("metadata", {})
    metadata["name"] = desired.name
    metadata["namespace"] = desired.namespace
    metadata["labels"] = labels
    metadata["annotations"] = annotations
    if owner_refs:
        metadata["ownerReferences"] = owner_refs
    manifest["spec"] = spec

    return manifest, drift


class IngressReconciler:
    """Drive the managed Ingress of one owner towards its desired state.

    States: Disabled, Converging, Ready, Degraded. Every pass re-reads the
    live object, so stale triggers are harmless. Store errors never escape
    ``reconcile``; they become a Degraded outcome.
    """

    def __init__(
        self,
        retry_policy: RetryPolicy | None = None,
        conflict_retries: int = 1,
        garbage_collect: bool = True,
    ) -> None:
        self.retry = retry_policy or RetryPolicy()
        self.conflict_retries = max(0, conflict_retries)
        self.garbage_collect = garbage_collect

    def _log(
        self,
        owner: OwnerIdentity,
        message: str,
        reason: str,
        level: int = logging.INFO,
        **kwargs: Any,
    ) -> None:
        log_resource_event(
            logger,
            controller=OPERATOR_NAME,
            resource_kind=KIND_INGRESS,
            resource_name=ingress_name(owner).name,
            namespace=owner.namespace,
            uid=owner.uid or "unknown",
            event="reconcile",
            reason=reason,
            message=message,
            level=level,
            **kwargs,
        )

    def _transition(
        self,
        owner: OwnerIdentity,
        current: ReconcileState | None,
        new: ReconcileState,
    ) -> None:
        if current is not new:
            self._log(
                owner,
                f"State {current.value if current else 'Unknown'} -> {new.value}",
                reason="StateTransition",
                level=logging.DEBUG if new is ReconcileState.CONVERGING else logging.INFO,
                from_state=current.value if current else None,
                to_state=new.value,
            )

    def reconcile(
        self,
        store: IngressStore,
        owner: OwnerIdentity,
        spec: OwnerSpec,
        current_state: ReconcileState | None = None,
    ) -> ReconcileOutcome:
        """Run one fetch-compute-diff-apply pass.

        Args:
            store: Resource store handle
            owner: Owner identity
            spec: Validated owner spec
            current_state: State last reported for this owner, if known

        Returns:
            Outcome to report on the owner status
        """
        target = ingress_name(owner)
        desired = compute_desired_ingress(spec, owner, garbage_collect=self.garbage_collect)

        with trace_span("reconcile_ingress", kind=KIND_INGRESS, attributes={"ingress.name": target.name}):
            try:
                if desired is None:
                    outcome = self._ensure_absent(store, owner, target)
                else:
                    self._transition(owner, current_state, ReconcileState.CONVERGING)
                    current_state = ReconcileState.CONVERGING
                    outcome = self._converge(store, owner, desired)
            except StoreError as e:
                outcome = self._degraded(owner, target, e)
            add_span_attribute("reconcile.state", outcome.state.value)
            add_span_attribute("reconcile.action", outcome.action)

        self._transition(owner, current_state, outcome.state)
        return outcome

    def teardown(self, store: IngressStore, owner: OwnerIdentity) -> ReconcileOutcome:
        """Delete the managed Ingress as the terminal step of owner deletion."""
        target = ingress_name(owner)
        try:
            return self._ensure_absent(store, owner, target)
        except StoreError as e:
            return self._degraded(owner, target, e)

    def _ensure_absent(
        self,
        store: IngressStore,
        owner: OwnerIdentity,
        target: ResourceName,
    ) -> ReconcileOutcome:
        # Only the derived name is ever deleted; other Ingresses are never looked at
        try:
            deleted = self.retry.call("delete_ingress", store.delete, target.namespace, target.name)
        except StoreError:
            metrics.ingress_operations_total.labels(operation="delete", result="failed").inc()
            raise

        if deleted:
            metrics.ingress_operations_total.labels(operation="delete", result="success").inc()
            self._log(owner, f"Deleted Ingress {target.name}", reason="IngressDeleted")
            return ReconcileOutcome(
                state=ReconcileState.DISABLED,
                detail=f"Ingress {target.name} deleted",
                action=ACTION_DELETED,
                ingress_name=target.name,
                writes=1,
            )

        return ReconcileOutcome(
            state=ReconcileState.DISABLED,
            detail="Ingress disabled",
            action=ACTION_ABSENT,
            ingress_name=target.name,
        )

    def _create(
        self,
        store: IngressStore,
        owner: OwnerIdentity,
        desired: DesiredIngress,
        live: LiveIngress | None = None,
    ) -> LiveIngress:
        # A plain create never carries an old version token, uid or managedFields
        if live is None:
            manifest = ingress_manifest(desired, desired_annotations(desired, None))
        else:
            # Recreating a vanished object keeps the foreign metadata seen at fetch time
            manifest = ingress_manifest(
                desired,
                desired_annotations(desired, live.annotations),
                labels={**live.labels, **desired.labels},
            )
            owner_refs = merge_owner_references(live.owner_references, desired.owner_references)
            if owner_refs:
                manifest["metadata"]["ownerReferences"] = owner_refs
        try:
            created = self.retry.call("create_ingress", store.create, manifest)
        except StoreError:
            metrics.ingress_operations_total.labels(operation="create", result="failed").inc()
            raise
        metrics.ingress_operations_total.labels(operation="create", result="success").inc()
        self._log(owner, f"Created Ingress {desired.name}", reason="IngressCreated")
        return created

    def _converge(
        self,
        store: IngressStore,
        owner: OwnerIdentity,
        desired: DesiredIngress,
    ) -> ReconcileOutcome:
        attempts = self.conflict_retries + 1
        last_conflict: ConflictError | None = None

        for attempt in range(attempts):
            live = self.retry.call("get_ingress", store.get, desired.namespace, desired.name)
            try:
                if live is None:
                    created = self._create(store, owner, desired)
                    return self._ready(desired, created, ACTION_CREATED, "Ingress created")
                return self._update(store, owner, desired, live)
            except ConflictError as e:
                last_conflict = e
                outcome = "retried" if attempt + 1 < attempts else "exhausted"
                metrics.conflict_total.labels(kind=KIND_INGRESS, outcome=outcome).inc()
                self._log(
                    owner,
                    f"Conflict writing Ingress {desired.name} (attempt {attempt + 1}/{attempts})",
                    reason="IngressConflict",
                    level=logging.WARNING,
                )

        return ReconcileOutcome(
            state=ReconcileState.DEGRADED,
            detail=f"Ingress {desired.name} kept conflicting after {attempts} attempts: "
            f"{sanitize_exception(last_conflict) if last_conflict else 'conflict'}",
            action=ACTION_FAILED,
            ingress_name=desired.name,
            error_type=ConflictError.__name__,
        )

    def _update(
        self,
        store: IngressStore,
        owner: OwnerIdentity,
        desired: DesiredIngress,
        live: LiveIngress,
    ) -> ReconcileOutcome:
        manifest, drift = plan_update(desired, live)
        if not drift:
            return self._ready(desired, live, ACTION_UNCHANGED, "Ingress is up to date")

        for field in drift:
            metrics.drift_detected_total.labels(kind=KIND_INGRESS, field=field).inc()
        self._log(owner, f"Drift detected on Ingress {desired.name}", reason="DriftDetected", fields=drift)

        try:
            updated = self.retry.call(
                "update_ingress",
                store.update,
                desired.namespace,
                desired.name,
                live.resource_version,
                manifest,
            )
        except NotFoundError:
            # Vanished between fetch and write: fall back to a plain create
            self._log(owner, f"Ingress {desired.name} vanished during update", reason="IngressVanished")
            created = self._create(store, owner, desired, live)
            return self._ready(desired, created, ACTION_CREATED, "Ingress recreated")
        except StoreError:
            metrics.ingress_operations_total.labels(operation="update", result="failed").inc()
            raise

        metrics.ingress_operations_total.labels(operation="update", result="success").inc()
        self._log(owner, f"Updated Ingress {desired.name}", reason="IngressUpdated", fields=drift)
        return self._ready(desired, updated, ACTION_UPDATED, f"Ingress updated ({', '.join(drift)})")

    def _ready(
        self,
        desired: DesiredIngress,
        live: LiveIngress,
        action: str,
        detail: str,
    ) -> ReconcileOutcome:
        return ReconcileOutcome(
            state=ReconcileState.READY,
            detail=detail,
            action=action,
            ingress_name=desired.name,
            resource_version=live.resource_version,
            writes=0 if action == ACTION_UNCHANGED else 1,
        )

    def _degraded(self, owner: OwnerIdentity, target: ResourceName, error: StoreError) -> ReconcileOutcome:
        sanitized = sanitize_exception(error)
        if isinstance(error, StoreValidationError):
            detail = f"Ingress {target.name} rejected: {sanitized}"
        elif isinstance(error, TransientStoreError):
            detail = f"Ingress store unavailable after retries: {sanitized}"
        else:
            detail = f"Ingress {target.name} reconcile failed: {sanitized}"

        metrics.error_total.labels(kind=KIND_INGRESS, error_type=type(error).__name__).inc()
        self._log(owner, detail, reason="ReconcileFailed", level=logging.ERROR, error_type=type(error).__name__)
        return ReconcileOutcome(
            state=ReconcileState.DEGRADED,
            detail=detail,
            action=ACTION_FAILED,
            ingress_name=target.name,
            error_type=type(error).__name__,
        )
