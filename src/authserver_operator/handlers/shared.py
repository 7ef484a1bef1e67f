"""Shared Kubernetes client helpers for handlers."""

from __future__ import annotations

import threading
import time
from typing import Any

from kubernetes import client, config

from .. import metrics
from ..constants import API_GROUP, API_VERSION, PLURAL_AUTH_SERVER
from ..utils.rate_limit import rate_limit_k8s

_config_lock = threading.Lock()
_config_loaded = False


def load_kube_config() -> None:
    """Load in-cluster configuration, falling back to the local kubeconfig."""
    global _config_loaded
    with _config_lock:
        if _config_loaded:
            return
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config()
        _config_loaded = True


def get_k8s_client() -> client.CustomObjectsApi:
    """Get Kubernetes CustomObjectsApi client."""
    load_kube_config()
    return client.CustomObjectsApi()


def get_networking_api() -> client.NetworkingV1Api:
    """Get Kubernetes NetworkingV1Api client (Ingress store)."""
    load_kube_config()
    return client.NetworkingV1Api()


def get_core_api() -> client.CoreV1Api:
    """Get Kubernetes CoreV1Api client (TLS secrets)."""
    load_kube_config()
    return client.CoreV1Api()


def get_auth_server(api: Any, name: str, namespace: str) -> dict[str, Any]:
    """Fetch an AuthServer, always from the API server.

    Owners are read fresh on every trigger so reconciles stay level-triggered.

    Raises:
        client.exceptions.ApiException: If the AuthServer is not found or on API error
    """
    start_time = time.time()
    try:
        owner = rate_limit_k8s(api.get_namespaced_custom_object)(
            group=API_GROUP,
            version=API_VERSION,
            namespace=namespace,
            plural=PLURAL_AUTH_SERVER,
            name=name,
        )
        metrics.api_call_total.labels(api_type="k8s", operation="get_auth_server", result="success").inc()
        return owner
    except Exception:
        metrics.api_call_total.labels(api_type="k8s", operation="get_auth_server", result="error").inc()
        raise
    finally:
        duration = time.time() - start_time
        metrics.api_call_duration_seconds.labels(api_type="k8s", operation="get_auth_server").observe(duration)
