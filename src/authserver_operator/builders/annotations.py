"""Annotation merging for the managed Ingress."""

from __future__ import annotations

import json
from typing import AbstractSet, Mapping

from ..models import AnnotationMode, CustomAnnotations


def merge_annotations(
    managed_keys: AbstractSet[str],
    computed: Mapping[str, str],
    custom: CustomAnnotations,
    live: Mapping[str, str] | None,
    previous_custom_keys: AbstractSet[str] = frozenset(),
) -> dict[str, str]:
    """Compute the annotation map to write on the managed Ingress.

    Args:
        managed_keys: Keys exclusively owned by the operator
        computed: Operator-computed values for the managed keys
        custom: Caller-supplied annotations (Untouched, Clear or Set)
        live: Annotations currently stored on the Ingress, None if absent
        previous_custom_keys: Custom keys applied by the previous reconcile

    Returns:
        Annotations where foreign keys are untouched, managed keys equal
        ``computed`` and, unless ``custom`` is Untouched, the custom keys
        equal ``custom.values``.
    """
    merged = dict(live or {})

    for key in managed_keys:
        merged.pop(key, None)

    if custom.mode is not AnnotationMode.UNTOUCHED:
        for key in previous_custom_keys:
            if key not in managed_keys:
                merged.pop(key, None)

    merged.update(computed)

    if custom.mode is AnnotationMode.SET:
        # Managed keys always win over caller values
        merged.update({k: v for k, v in custom.values.items() if k not in managed_keys})

    return merged


def applied_custom_keys(
    custom: CustomAnnotations,
    previous_custom_keys: AbstractSet[str],
    managed_keys: AbstractSet[str] = frozenset(),
) -> frozenset[str]:
    """Custom keys the operator is responsible for after this reconcile."""
    if custom.mode is AnnotationMode.UNTOUCHED:
        return frozenset(previous_custom_keys)
    if custom.mode is AnnotationMode.CLEAR:
        return frozenset()
    return frozenset(k for k in custom.values if k not in managed_keys)


def encode_custom_keys(keys: AbstractSet[str]) -> str:
    return json.dumps(sorted(keys), separators=(",", ":"))


def decode_custom_keys(value: str | None) -> frozenset[str]:
    """Parse the tracking annotation; anything malformed counts as no keys."""
    if not value:
        return frozenset()
    try:
        parsed = json.loads(value)
    except ValueError:
        return frozenset()
    if not isinstance(parsed, list):
        return frozenset()
    return frozenset(k for k in parsed if isinstance(k, str))
