"""Builder for the Ingress-relevant part of an AuthServer spec."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlsplit

from ..models import CustomAnnotations, OwnerSpec
from ..utils.errors import OwnerSpecError


def normalize_hostname(value: str | None) -> str | None:
    """Reduce a hostname or URL ("https://auth.example.com:8443/") to its host."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if "://" not in value:
        value = f"//{value}"
    # urlsplit lowercases the host and strips port, path and userinfo
    return urlsplit(value).hostname or None


def parse_custom_annotations(ingress: dict[str, Any]) -> CustomAnnotations:
    """Absent, null or {}: Clear. A map: Set.

    Removing the field drops the custom keys applied earlier; an Ingress that
    never had custom keys is not touched by a Clear.
    """
    annotations = ingress.get("annotations")
    if annotations is None:
        return CustomAnnotations.clear()
    if not isinstance(annotations, dict):
        raise OwnerSpecError("ingress.annotations must be a map of strings")

    invalid = sorted(k for k, v in annotations.items() if not isinstance(k, str) or not isinstance(v, str))
    if invalid:
        raise OwnerSpecError(f"ingress.annotations values must be strings: {', '.join(map(str, invalid))}")

    return CustomAnnotations.of(annotations)


def create_owner_spec_from_spec(spec: dict[str, Any]) -> OwnerSpec:
    """Create an OwnerSpec from the AuthServer CRD spec.

    Args:
        spec: AuthServer CRD spec

    Returns:
        Validated owner spec

    Raises:
        OwnerSpecError: If the spec cannot produce a valid Ingress
    """
    http = spec.get("http") or {}
    hostname_spec = spec.get("hostname") or {}
    ingress = spec.get("ingress") or {}

    # TLS is terminated by the AuthServer when a certificate secret is given
    tls_secret = http.get("tlsSecret")
    http_enabled = bool(http.get("httpEnabled", False))
    if not tls_secret and not http_enabled:
        raise OwnerSpecError("http.tlsSecret is required unless http.httpEnabled is true")

    hostname = normalize_hostname(hostname_spec.get("hostname"))
    strict = bool(hostname_spec.get("strict", False))
    if strict and not hostname:
        raise OwnerSpecError("hostname.hostname is required when hostname.strict is true")

    class_name = ingress.get("className")
    if class_name is not None and (not isinstance(class_name, str) or not class_name.strip()):
        raise OwnerSpecError("ingress.className must be a non-empty string")

    return OwnerSpec(
        enabled=bool(ingress.get("enabled", True)),
        hostname=hostname,
        strict_hostname=strict,
        ingress_class_name=class_name.strip() if class_name else None,
        custom_annotations=parse_custom_annotations(ingress),
        tls_enabled=bool(tls_secret),
        ingress_tls_secret=ingress.get("tlsSecret") or None,
    )


def referenced_tls_secrets(spec: dict[str, Any]) -> list[str]:
    """TLS secrets the owner spec depends on, in the order they are checked."""
    secrets = []
    tls_secret = (spec.get("http") or {}).get("tlsSecret")
    if tls_secret:
        secrets.append(tls_secret)
    ingress_secret = (spec.get("ingress") or {}).get("tlsSecret")
    if ingress_secret and ingress_secret not in secrets:
        secrets.append(ingress_secret)
    return secrets
