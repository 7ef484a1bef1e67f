"""Models for AuthServer Ingress reconciliation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from .constants import (
    INGRESS_PATH,
    INGRESS_PATH_TYPE,
    STATE_CONVERGING,
    STATE_DEGRADED,
    STATE_DISABLED,
    STATE_READY,
)


@dataclass(frozen=True)
class OwnerIdentity:
    """Identity of the AuthServer that owns the Ingress."""

    name: str
    namespace: str
    uid: str | None = None

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}/{self.uid or ''}"

    @classmethod
    def from_meta(cls, meta: Mapping[str, Any]) -> "OwnerIdentity":
        return cls(
            name=meta.get("name", "unknown"),
            namespace=meta.get("namespace", "default"),
            uid=meta.get("uid"),
        )


class AnnotationMode(str, Enum):
    """How the caller-supplied annotations apply to this reconcile."""

    UNTOUCHED = "Untouched"
    CLEAR = "Clear"
    SET = "Set"


@dataclass(frozen=True)
class CustomAnnotations:
    """Caller-supplied annotations: Untouched, Clear or Set(values)."""

    mode: AnnotationMode = AnnotationMode.UNTOUCHED
    values: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def untouched(cls) -> "CustomAnnotations":
        return cls(AnnotationMode.UNTOUCHED)

    @classmethod
    def clear(cls) -> "CustomAnnotations":
        return cls(AnnotationMode.CLEAR)

    @classmethod
    def of(cls, values: Mapping[str, str]) -> "CustomAnnotations":
        """Replace the custom annotations with ``values``; empty means clear."""
        if not values:
            return cls.clear()
        return cls(AnnotationMode.SET, dict(values))


@dataclass(frozen=True)
class OwnerSpec:
    """Validated Ingress-relevant part of an AuthServer spec."""

    enabled: bool = True
    hostname: str | None = None
    strict_hostname: bool = False
    ingress_class_name: str | None = None
    custom_annotations: CustomAnnotations = field(default_factory=CustomAnnotations.untouched)
    tls_enabled: bool = False
    ingress_tls_secret: str | None = None


@dataclass(frozen=True)
class ResourceName:
    namespace: str
    name: str


@dataclass(frozen=True)
class BackendRef:
    service_name: str
    port: int
    protocol: str


@dataclass(frozen=True)
class HostRule:
    host: str
    backend: BackendRef
    path: str = INGRESS_PATH
    path_type: str = INGRESS_PATH_TYPE


@dataclass(frozen=True)
class TLSRef:
    secret_name: str
    hosts: tuple[str, ...] = ()


@dataclass(frozen=True)
class DesiredIngress:
    """Target shape of the managed Ingress, recomputed on every reconcile."""

    name: str
    namespace: str
    labels: Mapping[str, str]
    annotations: Mapping[str, str]
    custom_annotations: CustomAnnotations
    default_backend: BackendRef
    rules: tuple[HostRule, ...] = ()
    ingress_class_name: str | None = None
    tls: TLSRef | None = None
    owner_references: tuple[Mapping[str, Any], ...] = ()


@dataclass(frozen=True)
class LiveIngress:
    """Last observed state of the managed Ingress."""

    name: str
    namespace: str
    resource_version: str | None
    labels: Mapping[str, str]
    annotations: Mapping[str, str]
    spec: Mapping[str, Any]
    owner_references: tuple[Mapping[str, Any], ...] = ()
    raw: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_manifest(cls, manifest: Mapping[str, Any]) -> "LiveIngress":
        metadata = manifest.get("metadata") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            resource_version=metadata.get("resourceVersion"),
            labels=dict(metadata.get("labels") or {}),
            annotations=dict(metadata.get("annotations") or {}),
            spec=dict(manifest.get("spec") or {}),
            owner_references=tuple(metadata.get("ownerReferences") or ()),
            raw=manifest,
        )


class ReconcileState(str, Enum):
    DISABLED = STATE_DISABLED
    CONVERGING = STATE_CONVERGING
    READY = STATE_READY
    DEGRADED = STATE_DEGRADED


@dataclass(frozen=True)
class ReconcileOutcome:
    """Result of one reconcile pass, reported to the owner status."""

    state: ReconcileState
    detail: str
    action: str
    ingress_name: str
    resource_version: str | None = None
    writes: int = 0
    error_type: str | None = None
