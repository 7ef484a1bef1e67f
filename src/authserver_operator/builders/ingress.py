"""Builder for the AuthServer Ingress."""

from __future__ import annotations

from typing import Any, Mapping

from ..constants import (
    ANNOTATION_BACKEND_PROTOCOL,
    ANNOTATION_ROUTE_TERMINATION,
    API_GROUP_VERSION,
    APP_NAME,
    BACKEND_PROTOCOL_HTTP,
    BACKEND_PROTOCOL_HTTPS,
    HTTP_PORT,
    HTTPS_PORT,
    INGRESS_GROUP_VERSION,
    INGRESS_SUFFIX,
    KIND_AUTH_SERVER,
    KIND_INGRESS,
    LABEL_APP,
    LABEL_INSTANCE,
    LABEL_MANAGED_BY,
    OPERATOR_NAME,
    SERVICE_SUFFIX,
    TERMINATION_EDGE,
    TERMINATION_PASSTHROUGH,
    TERMINATION_REENCRYPT,
)
from ..models import BackendRef, DesiredIngress, HostRule, OwnerIdentity, OwnerSpec, ResourceName, TLSRef


def ingress_name(owner: OwnerIdentity) -> ResourceName:
    """Derive the managed Ingress name; stable for the owner's lifetime."""
    return ResourceName(namespace=owner.namespace, name=f"{owner.name}{INGRESS_SUFFIX}")


def service_name(owner: OwnerIdentity) -> str:
    return f"{owner.name}{SERVICE_SUFFIX}"


def owner_labels(owner: OwnerIdentity) -> dict[str, str]:
    """Labels identifying the owner; written on create, never removing others."""
    return {
        LABEL_APP: APP_NAME,
        LABEL_MANAGED_BY: OPERATOR_NAME,
        LABEL_INSTANCE: owner.name,
    }


def owner_reference(owner: OwnerIdentity) -> dict[str, Any] | None:
    """ownerReference letting Kubernetes garbage-collect the Ingress.

    None when the owner uid is unknown.
    """
    if not owner.uid:
        return None
    return {
        "apiVersion": API_GROUP_VERSION,
        "kind": KIND_AUTH_SERVER,
        "name": owner.name,
        "uid": owner.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }


def compute_desired_ingress(
    spec: OwnerSpec,
    owner: OwnerIdentity,
    garbage_collect: bool = True,
) -> DesiredIngress | None:
    """Map a validated owner spec to the target Ingress.

    Args:
        spec: Validated owner spec
        owner: Owner identity
        garbage_collect: Attach an ownerReference to the owner

    Returns:
        The desired Ingress, or None when the Ingress must not exist
    """
    if not spec.enabled:
        return None

    target = ingress_name(owner)

    if spec.tls_enabled:
        backend = BackendRef(service_name(owner), HTTPS_PORT, BACKEND_PROTOCOL_HTTPS)
        termination = TERMINATION_REENCRYPT if spec.ingress_tls_secret else TERMINATION_PASSTHROUGH
    else:
        backend = BackendRef(service_name(owner), HTTP_PORT, BACKEND_PROTOCOL_HTTP)
        termination = TERMINATION_EDGE

    annotations = {
        ANNOTATION_BACKEND_PROTOCOL: backend.protocol,
        ANNOTATION_ROUTE_TERMINATION: termination,
    }

    rules: tuple[HostRule, ...] = ()
    if spec.hostname:
        rules = (HostRule(host=spec.hostname, backend=backend),)

    tls = None
    if spec.ingress_tls_secret:
        hosts = (spec.hostname,) if spec.hostname else ()
        tls = TLSRef(secret_name=spec.ingress_tls_secret, hosts=hosts)

    owner_refs: tuple[Mapping[str, Any], ...] = ()
    ref = owner_reference(owner) if garbage_collect else None
    if ref is not None:
        owner_refs = (ref,)

    return DesiredIngress(
        name=target.name,
        namespace=target.namespace,
        labels=owner_labels(owner),
        annotations=annotations,
        custom_annotations=spec.custom_annotations,
        default_backend=backend,
        rules=rules,
        ingress_class_name=spec.ingress_class_name,
        tls=tls,
        owner_references=owner_refs,
    )


def _backend_manifest(backend: BackendRef) -> dict[str, Any]:
    return {"service": {"name": backend.service_name, "port": {"number": backend.port}}}


def render_ingress_spec(desired: DesiredIngress) -> dict[str, Any]:
    """Render the Ingress spec fields owned by the operator."""
    spec: dict[str, Any] = {"defaultBackend": _backend_manifest(desired.default_backend)}

    if desired.ingress_class_name:
        spec["ingressClassName"] = desired.ingress_class_name

    if desired.rules:
        spec["rules"] = [
            {
                "host": rule.host,
                "http": {
                    "paths": [
                        {
                            "path": rule.path,
                            "pathType": rule.path_type,
                            "backend": _backend_manifest(rule.backend),
                        }
                    ]
                },
            }
            for rule in desired.rules
        ]

    if desired.tls is not None:
        tls_entry: dict[str, Any] = {"secretName": desired.tls.secret_name}
        if desired.tls.hosts:
            tls_entry["hosts"] = list(desired.tls.hosts)
        spec["tls"] = [tls_entry]

    return spec


def ingress_manifest(
    desired: DesiredIngress,
    annotations: Mapping[str, str],
    labels: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Full manifest for creating the Ingress."""
    metadata: dict[str, Any] = {
        "name": desired.name,
        "namespace": desired.namespace,
        "labels": dict(labels if labels is not None else desired.labels),
        "annotations": dict(annotations),
    }
    if desired.owner_references:
        metadata["ownerReferences"] = [dict(ref) for ref in desired.owner_references]

    return {
        "apiVersion": INGRESS_GROUP_VERSION,
        "kind": KIND_INGRESS,
        "metadata": metadata,
        "spec": render_ingress_spec(desired),
    }
