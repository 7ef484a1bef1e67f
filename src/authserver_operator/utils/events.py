"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import (
    EVENT_REASON_INGRESS_CONFLICT,
    EVENT_REASON_INGRESS_CREATED,
    EVENT_REASON_INGRESS_DELETED,
    EVENT_REASON_INGRESS_UPDATED,
    EVENT_REASON_RECONCILE_FAILED,
    EVENT_REASON_RECONCILE_STARTED,
    EVENT_REASON_VALIDATE_FAILED,
    EVENT_REASON_VALIDATE_SUCCEEDED,
)


def emit_event(
    body: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event.

    Args:
        body: Body of the resource the event is about
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    kopf.event(
        body,
        reason=reason,
        message=message,
        type=type_,
    )


def emit_reconcile_started(body: dict[str, Any]) -> None:
    """Emit reconcile started event."""
    emit_event(body, EVENT_REASON_RECONCILE_STARTED, "Reconciliation started")


def emit_reconcile_failed(body: dict[str, Any], message: str) -> None:
    """Emit reconcile failed event."""
    emit_event(body, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")


def emit_validate_succeeded(body: dict[str, Any]) -> None:
    """Emit validation succeeded event."""
    emit_event(body, EVENT_REASON_VALIDATE_SUCCEEDED, "Validation succeeded")


def emit_validate_failed(body: dict[str, Any], message: str) -> None:
    """Emit validation failed event."""
    emit_event(body, EVENT_REASON_VALIDATE_FAILED, message, type_="Warning")


def emit_ingress_created(body: dict[str, Any], ingress_name: str) -> None:
    emit_event(body, EVENT_REASON_INGRESS_CREATED, f"Ingress {ingress_name} created")


def emit_ingress_updated(body: dict[str, Any], ingress_name: str, detail: str) -> None:
    emit_event(body, EVENT_REASON_INGRESS_UPDATED, f"Ingress {ingress_name}: {detail}")


def emit_ingress_deleted(body: dict[str, Any], ingress_name: str) -> None:
    emit_event(body, EVENT_REASON_INGRESS_DELETED, f"Ingress {ingress_name} deleted")


def emit_ingress_conflict(body: dict[str, Any], message: str) -> None:
    emit_event(body, EVENT_REASON_INGRESS_CONFLICT, message, type_="Warning")
