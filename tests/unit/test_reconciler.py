"""Tests for the Ingress reconciler."""

from __future__ import annotations

import pytest

from authserver_operator.constants import (
    ANNOTATION_BACKEND_PROTOCOL,
    ANNOTATION_CUSTOM_KEYS,
    ANNOTATION_ROUTE_TERMINATION,
    LABEL_INSTANCE,
    LABEL_MANAGED_BY,
)
from authserver_operator.models import (
    CustomAnnotations,
    OwnerIdentity,
    OwnerSpec,
    ReconcileState,
)
from authserver_operator.reconciler import (
    ACTION_ABSENT,
    ACTION_CREATED,
    ACTION_DELETED,
    ACTION_UNCHANGED,
    ACTION_UPDATED,
    IngressReconciler,
)
from authserver_operator.utils.errors import StoreValidationError, TransientStoreError
from authserver_operator.utils.retry import RetryPolicy

NAME = "keycloak-ingress"
NS = "auth"


@pytest.fixture
def reconciler(sleeps: list[float]) -> IngressReconciler:
    return IngressReconciler(retry_policy=RetryPolicy(sleep=sleeps.append))


def http_spec(**kwargs) -> OwnerSpec:
    return OwnerSpec(enabled=True, hostname="auth.example.com", **kwargs)


class TestCreate:
    """Creating the Ingress when it is absent."""

    def test_creates_http_ingress(self, reconciler, store, owner):
        """Test HTTP-only owner gets an edge-terminated Ingress on port 8080."""
        outcome = reconciler.reconcile(store, owner, http_spec())

        assert outcome.state is ReconcileState.READY
        assert outcome.action == ACTION_CREATED
        assert outcome.writes == 1
        assert outcome.ingress_name == NAME

        raw = store.raw(NS, NAME)
        annotations = raw["metadata"]["annotations"]
        assert annotations[ANNOTATION_BACKEND_PROTOCOL] == "HTTP"
        assert annotations[ANNOTATION_ROUTE_TERMINATION] == "edge"
        assert raw["spec"]["defaultBackend"]["service"] == {"name": "keycloak-service", "port": {"number": 8080}}
        assert raw["spec"]["rules"][0]["host"] == "auth.example.com"
        assert raw["metadata"]["labels"][LABEL_MANAGED_BY] == "authserver-operator"
        assert raw["metadata"]["labels"][LABEL_INSTANCE] == "keycloak"
        assert raw["metadata"]["ownerReferences"][0]["uid"] == "uid-1"

    def test_creates_tls_passthrough_ingress(self, reconciler, store, owner):
        """Test TLS owner gets an HTTPS passthrough backend on port 8443."""
        reconciler.reconcile(store, owner, http_spec(tls_enabled=True))

        raw = store.raw(NS, NAME)
        assert raw["metadata"]["annotations"][ANNOTATION_BACKEND_PROTOCOL] == "HTTPS"
        assert raw["metadata"]["annotations"][ANNOTATION_ROUTE_TERMINATION] == "passthrough"
        assert raw["spec"]["defaultBackend"]["service"]["port"]["number"] == 8443
        assert "tls" not in raw["spec"]

    def test_creates_tls_reencrypt_ingress(self, reconciler, store, owner):
        """Test an Ingress TLS secret switches termination to reencrypt."""
        reconciler.reconcile(store, owner, http_spec(tls_enabled=True, ingress_tls_secret="ingress-tls"))

        raw = store.raw(NS, NAME)
        assert raw["metadata"]["annotations"][ANNOTATION_ROUTE_TERMINATION] == "reencrypt"
        assert raw["spec"]["tls"] == [{"secretName": "ingress-tls", "hosts": ["auth.example.com"]}]

    def test_no_owner_reference_without_gc(self, store, owner):
        """Test ownerReferences are omitted when teardown is explicit."""
        reconciler = IngressReconciler(retry_policy=RetryPolicy(sleep=lambda _: None), garbage_collect=False)

        reconciler.reconcile(store, owner, http_spec())

        assert "ownerReferences" not in store.raw(NS, NAME)["metadata"]

    def test_validation_error_is_degraded_without_retry(self, reconciler, store, owner):
        """Test a rejected object degrades at once."""
        store.fail_next("create", StoreValidationError("create_ingress failed: 422 Unprocessable", 422))

        outcome = reconciler.reconcile(store, owner, http_spec())

        assert outcome.state is ReconcileState.DEGRADED
        assert outcome.error_type == "StoreValidationError"
        assert "rejected" in outcome.detail
        assert store.count("create") == 1


class TestIdempotence:
    """Repeated reconciles of an unchanged owner."""

    def test_second_pass_writes_nothing(self, reconciler, store, owner):
        """Test a converged Ingress is not rewritten."""
        reconciler.reconcile(store, owner, http_spec())
        version = store.raw(NS, NAME)["metadata"]["resourceVersion"]

        outcome = reconciler.reconcile(store, owner, http_spec(), ReconcileState.READY)

        assert outcome.state is ReconcileState.READY
        assert outcome.action == ACTION_UNCHANGED
        assert outcome.writes == 0
        assert store.count("update") == 0
        assert store.raw(NS, NAME)["metadata"]["resourceVersion"] == version

    def test_idempotent_with_custom_annotations(self, reconciler, store, owner):
        """Test tracked custom annotations do not cause endless updates."""
        spec = http_spec(custom_annotations=CustomAnnotations.of({"example.com/a": "1"}))
        reconciler.reconcile(store, owner, spec)

        outcome = reconciler.reconcile(store, owner, spec)

        assert outcome.action == ACTION_UNCHANGED
        assert store.count("update") == 0


class TestUpdate:
    """Converging an existing Ingress."""

    def test_switch_to_tls_updates_in_place(self, reconciler, store, owner):
        """Test enabling TLS updates backend port and annotations."""
        reconciler.reconcile(store, owner, http_spec())

        outcome = reconciler.reconcile(store, owner, http_spec(tls_enabled=True))

        assert outcome.action == ACTION_UPDATED
        assert outcome.writes == 1
        raw = store.raw(NS, NAME)
        assert raw["spec"]["defaultBackend"]["service"]["port"]["number"] == 8443
        assert raw["metadata"]["annotations"][ANNOTATION_BACKEND_PROTOCOL] == "HTTPS"
        assert store.count("create") == 1

    def test_heals_drift_and_keeps_foreign_metadata(self, reconciler, store, owner):
        """Test external spec edits are reverted while foreign labels and annotations stay."""
        reconciler.reconcile(store, owner, http_spec())

        def tamper(obj):
            obj["metadata"]["labels"]["team"] = "identity"
            obj["metadata"]["annotations"]["example.com/foreign"] = "kept"
            obj["metadata"]["annotations"][ANNOTATION_BACKEND_PROTOCOL] = "GRPC"
            obj["spec"]["defaultBackend"]["service"]["port"]["number"] = 9999

        store.edit(NS, NAME, tamper)

        outcome = reconciler.reconcile(store, owner, http_spec())

        assert outcome.action == ACTION_UPDATED
        raw = store.raw(NS, NAME)
        assert raw["spec"]["defaultBackend"]["service"]["port"]["number"] == 8080
        assert raw["metadata"]["annotations"][ANNOTATION_BACKEND_PROTOCOL] == "HTTP"
        assert raw["metadata"]["annotations"]["example.com/foreign"] == "kept"
        assert raw["metadata"]["labels"]["team"] == "identity"

    def test_keeps_foreign_owner_references(self, reconciler, store, owner):
        """Test another owner's reference survives next to ours."""
        reconciler.reconcile(store, owner, http_spec())
        foreign = {"apiVersion": "v1", "kind": "ConfigMap", "name": "other", "uid": "uid-other"}
        store.edit(NS, NAME, lambda obj: obj["metadata"]["ownerReferences"].append(foreign))

        reconciler.reconcile(store, owner, http_spec(tls_enabled=True))

        uids = [ref["uid"] for ref in store.raw(NS, NAME)["metadata"]["ownerReferences"]]
        assert uids == ["uid-1", "uid-other"]

    def test_class_name_change(self, reconciler, store, owner):
        """Test a changed class name is applied."""
        reconciler.reconcile(store, owner, http_spec(ingress_class_name="nginx"))

        outcome = reconciler.reconcile(store, owner, http_spec(ingress_class_name="traefik"))

        assert outcome.action == ACTION_UPDATED
        assert store.raw(NS, NAME)["spec"]["ingressClassName"] == "traefik"

    def test_unset_class_name_keeps_assigned_class(self, reconciler, store, owner):
        """Test a class assigned by admission is not treated as drift."""
        reconciler.reconcile(store, owner, http_spec())
        store.edit(NS, NAME, lambda obj: obj["spec"].__setitem__("ingressClassName", "default-class"))

        outcome = reconciler.reconcile(store, owner, http_spec())

        assert outcome.action == ACTION_UNCHANGED
        assert store.raw(NS, NAME)["spec"]["ingressClassName"] == "default-class"

    def test_vanished_during_update_falls_back_to_create(self, reconciler, store, owner):
        """Test NotFound on update leads to a plain create."""
        reconciler.reconcile(store, owner, http_spec())
        store.before_next("update", lambda: store.remove(NS, NAME))

        outcome = reconciler.reconcile(store, owner, http_spec(tls_enabled=True))

        assert outcome.state is ReconcileState.READY
        assert outcome.action == ACTION_CREATED
        assert outcome.detail == "Ingress recreated"
        assert store.raw(NS, NAME)["spec"]["defaultBackend"]["service"]["port"]["number"] == 8443

    def test_recreate_keeps_metadata_seen_at_fetch(self, reconciler, store, owner):
        """Test a recreated Ingress keeps foreign labels, annotations and tracked custom keys."""
        reconciler.reconcile(store, owner, http_spec(custom_annotations=CustomAnnotations.of({"example.com/a": "1"})))

        def tamper(obj):
            obj["metadata"]["labels"]["team"] = "identity"
            obj["metadata"]["annotations"]["example.com/foreign"] = "x"

        store.edit(NS, NAME, tamper)
        store.before_next("update", lambda: store.remove(NS, NAME))

        outcome = reconciler.reconcile(store, owner, http_spec(tls_enabled=True))

        assert outcome.action == ACTION_CREATED
        metadata = store.raw(NS, NAME)["metadata"]
        assert metadata["labels"]["team"] == "identity"
        assert metadata["labels"][LABEL_MANAGED_BY] == "authserver-operator"
        assert metadata["annotations"]["example.com/foreign"] == "x"
        assert metadata["annotations"]["example.com/a"] == "1"
        assert metadata["annotations"][ANNOTATION_CUSTOM_KEYS] == '["example.com/a"]'
        assert metadata["annotations"][ANNOTATION_BACKEND_PROTOCOL] == "HTTPS"

    def test_heals_external_delete(self, reconciler, store, owner):
        """Test a deleted Ingress is recreated on the next pass."""
        reconciler.reconcile(store, owner, http_spec())
        store.remove(NS, NAME)

        outcome = reconciler.reconcile(store, owner, http_spec(), ReconcileState.READY)

        assert outcome.action == ACTION_CREATED
        assert (NS, NAME) in store.objects


class TestCustomAnnotations:
    """Lifecycle of caller-supplied annotations."""

    def test_set_replace_untouched_clear(self, reconciler, store, owner):
        """Test custom keys are applied, replaced, kept and cleared."""
        reconciler.reconcile(store, owner, http_spec(custom_annotations=CustomAnnotations.of({"example.com/a": "1"})))
        store.edit(NS, NAME, lambda obj: obj["metadata"]["annotations"].__setitem__("example.com/foreign", "x"))

        def annotations():
            return store.raw(NS, NAME)["metadata"]["annotations"]

        assert annotations()["example.com/a"] == "1"
        assert annotations()[ANNOTATION_CUSTOM_KEYS] == '["example.com/a"]'

        reconciler.reconcile(store, owner, http_spec(custom_annotations=CustomAnnotations.of({"example.com/b": "2"})))
        assert "example.com/a" not in annotations()
        assert annotations()["example.com/b"] == "2"

        reconciler.reconcile(store, owner, http_spec(custom_annotations=CustomAnnotations.untouched()))
        assert annotations()["example.com/b"] == "2"

        reconciler.reconcile(store, owner, http_spec(custom_annotations=CustomAnnotations.clear()))
        assert "example.com/b" not in annotations()
        assert ANNOTATION_CUSTOM_KEYS not in annotations()
        assert annotations()["example.com/foreign"] == "x"

    def test_custom_values_never_override_managed_keys(self, reconciler, store, owner):
        """Test a custom value for a managed key is ignored."""
        custom = CustomAnnotations.of({ANNOTATION_BACKEND_PROTOCOL: "GRPC", "example.com/a": "1"})

        reconciler.reconcile(store, owner, http_spec(custom_annotations=custom))

        annotations = store.raw(NS, NAME)["metadata"]["annotations"]
        assert annotations[ANNOTATION_BACKEND_PROTOCOL] == "HTTP"
        assert annotations[ANNOTATION_CUSTOM_KEYS] == '["example.com/a"]'


class TestDisable:
    """Disabled ingress means the Ingress must not exist."""

    def test_disable_deletes_ingress(self, reconciler, store, owner):
        """Test disabling removes the managed Ingress."""
        reconciler.reconcile(store, owner, http_spec())

        outcome = reconciler.reconcile(store, owner, OwnerSpec(enabled=False), ReconcileState.READY)

        assert outcome.state is ReconcileState.DISABLED
        assert outcome.action == ACTION_DELETED
        assert outcome.writes == 1
        assert (NS, NAME) not in store.objects

    def test_disable_when_absent_is_a_no_op(self, reconciler, store, owner):
        """Test a disabled owner with no Ingress writes nothing."""
        outcome = reconciler.reconcile(store, owner, OwnerSpec(enabled=False))

        assert outcome.state is ReconcileState.DISABLED
        assert outcome.action == ACTION_ABSENT
        assert outcome.writes == 0

    def test_disable_only_touches_derived_name(self, reconciler, store, owner):
        """Test other Ingresses in the namespace are never deleted."""
        store.put({"metadata": {"name": "other-ingress", "namespace": NS}, "spec": {}})

        reconciler.reconcile(store, owner, OwnerSpec(enabled=False))

        assert (NS, "other-ingress") in store.objects
        assert store.calls == [("delete", NAME)]

    def test_owners_do_not_interfere(self, reconciler, store, owner):
        """Test two owners in one namespace manage separate Ingresses."""
        other = OwnerIdentity(name="other", namespace=NS, uid="uid-2")
        reconciler.reconcile(store, owner, http_spec())
        reconciler.reconcile(store, other, http_spec())

        reconciler.reconcile(store, other, OwnerSpec(enabled=False))

        assert (NS, NAME) in store.objects
        assert (NS, "other-ingress") not in store.objects


class TestConflicts:
    """Version conflicts are retried once, then reported."""

    def test_conflict_retried_once(self, reconciler, store, owner):
        """Test a concurrent write is absorbed by one refetch."""
        reconciler.reconcile(store, owner, http_spec())
        store.before_next("update", lambda: store.edit(NS, NAME, lambda obj: None))

        outcome = reconciler.reconcile(store, owner, http_spec(tls_enabled=True))

        assert outcome.state is ReconcileState.READY
        assert outcome.action == ACTION_UPDATED
        assert store.count("update") == 2

    def test_repeated_conflict_degrades(self, reconciler, store, owner):
        """Test a second conflict in the same pass degrades the owner."""
        reconciler.reconcile(store, owner, http_spec())
        store.before_next("update", lambda: store.edit(NS, NAME, lambda obj: None), times=2)

        outcome = reconciler.reconcile(store, owner, http_spec(tls_enabled=True))

        assert outcome.state is ReconcileState.DEGRADED
        assert outcome.error_type == "ConflictError"
        assert store.count("update") == 2

    def test_create_conflict_retries_as_update(self, reconciler, store, owner):
        """Test an Ingress created concurrently is adopted on the retry."""
        store.before_next(
            "create",
            lambda: store.objects.update(
                {(NS, NAME): {"metadata": {"name": NAME, "namespace": NS, "resourceVersion": "99"}, "spec": {}}}
            ),
        )

        outcome = reconciler.reconcile(store, owner, http_spec())

        assert outcome.state is ReconcileState.READY
        assert outcome.action == ACTION_UPDATED
        assert store.raw(NS, NAME)["spec"]["defaultBackend"]["service"]["port"]["number"] == 8080


class TestTransientErrors:
    """Transient store failures back off and eventually degrade."""

    def test_recovers_after_backoff(self, reconciler, store, owner, sleeps):
        """Test transient failures are retried with growing delays."""
        store.fail_next("get", TransientStoreError("get_ingress failed: 503", 503), times=2)

        outcome = reconciler.reconcile(store, owner, http_spec())

        assert outcome.state is ReconcileState.READY
        assert sleeps == [1.0, 2.0]

    def test_exhausted_retries_degrade(self, reconciler, store, owner, sleeps):
        """Test the owner degrades once transient retries are exhausted."""
        store.fail_next("get", TransientStoreError("get_ingress failed: 503", 503), times=3)

        outcome = reconciler.reconcile(store, owner, http_spec(), ReconcileState.READY)

        assert outcome.state is ReconcileState.DEGRADED
        assert outcome.error_type == "TransientStoreError"
        assert "unavailable" in outcome.detail
        assert len(sleeps) == 2


class TestTeardown:
    """Explicit teardown on owner deletion."""

    def test_teardown_deletes(self, reconciler, store, owner):
        """Test teardown removes the Ingress."""
        reconciler.reconcile(store, owner, http_spec())

        outcome = reconciler.teardown(store, owner)

        assert outcome.action == ACTION_DELETED
        assert store.objects == {}

    def test_teardown_failure_is_degraded(self, reconciler, store, owner):
        """Test a failing delete is reported, not raised."""
        store.fail_next("delete", TransientStoreError("delete_ingress failed: 503", 503), times=3)

        outcome = reconciler.teardown(store, owner)

        assert outcome.state is ReconcileState.DEGRADED
