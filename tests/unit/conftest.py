"""Shared fixtures for unit tests."""

from __future__ import annotations

import copy
from typing import Any, Callable
from unittest.mock import patch

import pytest

from authserver_operator.models import LiveIngress, OwnerIdentity
from authserver_operator.utils.errors import ConflictError, NotFoundError


class FakeIngressStore:
    """In-memory IngressStore with resource versions, call log and fault injection."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self._version = 0
        self._faults: dict[str, list[Exception]] = {}
        self._hooks: dict[str, list[Callable[[], None]]] = {}

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def fail_next(self, operation: str, error: Exception, times: int = 1) -> None:
        self._faults.setdefault(operation, []).extend([error] * times)

    def before_next(self, operation: str, hook: Callable[[], None], times: int = 1) -> None:
        self._hooks.setdefault(operation, []).extend([hook] * times)

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    def _enter(self, operation: str, name: str) -> None:
        self.calls.append((operation, name))
        hooks = self._hooks.get(operation)
        if hooks:
            hooks.pop(0)()
        faults = self._faults.get(operation)
        if faults:
            raise faults.pop(0)

    def _live(self, manifest: dict[str, Any]) -> LiveIngress:
        return LiveIngress.from_manifest(copy.deepcopy(manifest))

    def put(self, manifest: dict[str, Any]) -> LiveIngress:
        """Store an object directly, as another actor would."""
        stored = copy.deepcopy(manifest)
        metadata = stored.setdefault("metadata", {})
        metadata["resourceVersion"] = self._next_version()
        self.objects[(metadata["namespace"], metadata["name"])] = stored
        return self._live(stored)

    def edit(self, namespace: str, name: str, fn: Callable[[dict[str, Any]], None]) -> None:
        """Mutate a stored object out of band, bumping its version."""
        stored = self.objects[(namespace, name)]
        fn(stored)
        stored["metadata"]["resourceVersion"] = self._next_version()

    def remove(self, namespace: str, name: str) -> None:
        self.objects.pop((namespace, name), None)

    def raw(self, namespace: str, name: str) -> dict[str, Any]:
        return self.objects[(namespace, name)]

    def get(self, namespace: str, name: str) -> LiveIngress | None:
        self._enter("get", name)
        stored = self.objects.get((namespace, name))
        return self._live(stored) if stored is not None else None

    def create(self, manifest: dict[str, Any]) -> LiveIngress:
        metadata = manifest["metadata"]
        self._enter("create", metadata["name"])
        if (metadata["namespace"], metadata["name"]) in self.objects:
            raise ConflictError(f"ingress {metadata['name']} already exists", 409)
        assert "resourceVersion" not in metadata
        return self.put(manifest)

    def update(
        self,
        namespace: str,
        name: str,
        resource_version: str | None,
        manifest: dict[str, Any],
    ) -> LiveIngress:
        self._enter("update", name)
        stored = self.objects.get((namespace, name))
        if stored is None:
            raise NotFoundError(f"ingress {name} not found", 404)
        if stored["metadata"]["resourceVersion"] != resource_version:
            raise ConflictError(f"ingress {name} was modified", 409)
        return self.put(manifest)

    def delete(self, namespace: str, name: str) -> bool:
        self._enter("delete", name)
        return self.objects.pop((namespace, name), None) is not None


@pytest.fixture
def store() -> FakeIngressStore:
    return FakeIngressStore()


@pytest.fixture
def owner() -> OwnerIdentity:
    return OwnerIdentity(name="keycloak", namespace="auth", uid="uid-1")


@pytest.fixture
def sleeps() -> list[float]:
    """Delays requested by retry policies built with ``sleep=sleeps.append``."""
    return []


@pytest.fixture(autouse=True)
def no_kopf_events():
    """kopf.event needs a running operator; record calls instead."""
    with patch("authserver_operator.utils.events.kopf.event") as mock_event:
        yield mock_event
