"""Ingress resource store: the only shared mutable state the operator writes."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Protocol, TypeVar

from kubernetes import client
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError as TransportError

from .. import metrics
from ..constants import FIELD_MANAGER
from ..models import LiveIngress
from ..tracing import trace_span
from ..utils.errors import (
    ConflictError,
    NotFoundError,
    StoreError,
    StoreValidationError,
    TransientStoreError,
)
from ..utils.rate_limit import rate_limit_k8s

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_STATUSES = {429, 500, 502, 503, 504}


class IngressStore(Protocol):
    """Protocol defining the namespaced, versioned Ingress store."""

    def get(self, namespace: str, name: str) -> LiveIngress | None:
        """Fetch the Ingress, None when it does not exist."""
        ...

    def create(self, manifest: dict[str, Any]) -> LiveIngress:
        """Create the Ingress.

        Raises:
            ConflictError: an object with that name already exists
            StoreValidationError: the store rejected the object
        """
        ...

    def update(
        self,
        namespace: str,
        name: str,
        resource_version: str | None,
        manifest: dict[str, Any],
    ) -> LiveIngress:
        """Replace the Ingress, guarded by ``resource_version``.

        Raises:
            ConflictError: the version token is stale
            NotFoundError: the object vanished
        """
        ...

    def delete(self, namespace: str, name: str) -> bool:
        """Delete the Ingress; False when it was already absent."""
        ...


def translate_api_exception(e: ApiException, operation: str) -> StoreError:
    """Map a Kubernetes API failure to the store error taxonomy."""
    message = f"{operation} failed: {e.status} {e.reason}"
    if e.status == 404:
        return NotFoundError(message, e.status)
    if e.status == 409:
        return ConflictError(message, e.status)
    if e.status in (400, 422):
        return StoreValidationError(message, e.status)
    if e.status in TRANSIENT_STATUSES:
        return TransientStoreError(message, e.status)
    return StoreError(message, e.status)


class KubernetesIngressStore:
    """IngressStore backed by the Kubernetes networking/v1 API."""

    def __init__(self, api: client.NetworkingV1Api) -> None:
        self.api = api

    def _call(self, operation: str, fn: Callable[..., T], **kwargs: Any) -> T:
        start_time = time.time()
        with trace_span(f"ingress.{operation}", kind="Ingress"):
            try:
                result = rate_limit_k8s(fn)(**kwargs)
                metrics.api_call_total.labels(api_type="k8s", operation=operation, result="success").inc()
                return result
            except ApiException as e:
                metrics.api_call_total.labels(api_type="k8s", operation=operation, result="error").inc()
                raise translate_api_exception(e, operation) from e
            except TransportError as e:
                metrics.api_call_total.labels(api_type="k8s", operation=operation, result="error").inc()
                raise TransientStoreError(f"{operation} failed: {e}") from e
            finally:
                duration = time.time() - start_time
                metrics.api_call_duration_seconds.labels(api_type="k8s", operation=operation).observe(duration)

    def _to_live(self, obj: Any) -> LiveIngress:
        return LiveIngress.from_manifest(self.api.api_client.sanitize_for_serialization(obj))

    def get(self, namespace: str, name: str) -> LiveIngress | None:
        try:
            obj = self._call("get_ingress", self.api.read_namespaced_ingress, name=name, namespace=namespace)
        except NotFoundError:
            return None
        return self._to_live(obj)

    def create(self, manifest: dict[str, Any]) -> LiveIngress:
        metadata = manifest["metadata"]
        obj = self._call(
            "create_ingress",
            self.api.create_namespaced_ingress,
            namespace=metadata["namespace"],
            body=manifest,
            field_manager=FIELD_MANAGER,
        )
        return self._to_live(obj)

    def update(
        self,
        namespace: str,
        name: str,
        resource_version: str | None,
        manifest: dict[str, Any],
    ) -> LiveIngress:
        body = dict(manifest)
        body["metadata"] = {**manifest.get("metadata", {}), "resourceVersion": resource_version}
        obj = self._call(
            "update_ingress",
            self.api.replace_namespaced_ingress,
            name=name,
            namespace=namespace,
            body=body,
            field_manager=FIELD_MANAGER,
        )
        return self._to_live(obj)

    def delete(self, namespace: str, name: str) -> bool:
        try:
            self._call("delete_ingress", self.api.delete_namespaced_ingress, name=name, namespace=namespace)
        except NotFoundError:
            return False
        return True
