"""Utilities for checking Kubernetes TLS secrets referenced by an AuthServer."""

from __future__ import annotations

from kubernetes import client

from .errors import OwnerSpecError

TLS_SECRET_KEYS = ("tls.crt", "tls.key")


def verify_tls_secret(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
) -> None:
    """Check that a TLS secret exists and carries a certificate and key.

    Args:
        api: Kubernetes API client
        namespace: Namespace of the secret
        secret_name: Name of the secret

    Raises:
        OwnerSpecError: If the secret or one of its keys is missing
        client.exceptions.ApiException: Any other API failure
    """
    try:
        secret = api.read_namespaced_secret(name=secret_name, namespace=namespace)
    except client.exceptions.ApiException as e:
        if e.status == 404:
            raise OwnerSpecError(f"TLS secret '{secret_name}' not found in namespace '{namespace}'") from e
        raise

    data = secret.data or {}
    missing = [key for key in TLS_SECRET_KEYS if not data.get(key)]
    if missing:
        raise OwnerSpecError(f"TLS secret '{secret_name}' is missing keys: {', '.join(missing)}")


def verify_tls_secrets(api: client.CoreV1Api, namespace: str, secret_names: list[str]) -> None:
    """Verify every referenced TLS secret, failing on the first bad one."""
    for secret_name in secret_names:
        verify_tls_secret(api, namespace, secret_name)
