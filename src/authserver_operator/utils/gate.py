"""Per-owner serialization of reconciles with trigger coalescing."""

from __future__ import annotations

import logging
import threading
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Oldest terminated keys are forgotten beyond this many
MAX_TERMINATED_KEYS = 4096


class ReconcileGate:
    """Allow at most one in-flight reconcile per owner key.

    A trigger that arrives while the same owner is reconciling does not run
    concurrently: its callable is parked and run once after the current pass
    finishes. Only the latest parked callable survives, since every pass
    re-reads live state. Different keys never wait on each other.
    """

    def __init__(self, max_terminated: int = MAX_TERMINATED_KEYS) -> None:
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._running: set[str] = set()
        self._pending: dict[str, Callable[[], object]] = {}
        self._max_terminated = max_terminated
        self._terminated: dict[str, None] = {}

    def is_running(self, key: str) -> bool:
        with self._lock:
            return key in self._running

    def is_terminated(self, key: str) -> bool:
        with self._lock:
            return key in self._terminated

    def run(self, key: str, fn: Callable[[], T]) -> T | None:
        """Run ``fn`` for ``key``, or park it if a reconcile is in flight.

        Returns:
            The result of the last pass run by this caller, or None when the
            trigger was coalesced into another caller's run or the key is
            terminated.
        """
        with self._lock:
            if key in self._terminated:
                logger.debug(f"Dropping trigger for terminated owner {key}")
                return None
            if key in self._running:
                self._pending[key] = fn
                return None
            self._running.add(key)

        current: Callable[[], object] = fn
        try:
            while True:
                result = current()
                with self._lock:
                    parked = self._pending.pop(key, None)
                    if parked is None or key in self._terminated:
                        self._running.discard(key)
                        self._idle.notify_all()
                        return result  # type: ignore[return-value]
                current = parked
        except BaseException:
            with self._lock:
                self._running.discard(key)
                self._pending.pop(key, None)
                self._idle.notify_all()
            raise

    def terminate(self, key: str) -> None:
        """Drop pending triggers for ``key`` and refuse future ones."""
        with self._lock:
            self._terminated.pop(key, None)
            self._terminated[key] = None
            self._pending.pop(key, None)
            while len(self._terminated) > self._max_terminated:
                del self._terminated[next(iter(self._terminated))]

    def wait_idle(self, key: str, timeout: float | None = None) -> bool:
        """Block until no reconcile for ``key`` is in flight.

        Returns:
            False if ``timeout`` expired first
        """
        with self._idle:
            return self._idle.wait_for(lambda: key not in self._running, timeout=timeout)
