"""Bounded exponential backoff for transient store errors."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from .. import metrics
from ..config import OperatorConfig
from .errors import TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Retry a store call on TransientStoreError with capped exponential backoff.

    Delays are ``base_delay * multiplier ** attempt`` capped at ``max_delay``,
    e.g. 1s, 2s, 4s. ``sleep`` is injectable so tests never really wait.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 8.0
    multiplier: float = 2.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @classmethod
    def from_config(cls, config: OperatorConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.retry_max_attempts,
            base_delay=config.retry_base_delay_seconds,
            max_delay=config.retry_max_delay_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (0-based)."""
        return min(self.base_delay * (self.multiplier ** attempt), self.max_delay)

    def call(self, operation: str, fn: Callable[..., T], *args: object, **kwargs: object) -> T:
        """Invoke ``fn`` and retry transient failures.

        Raises:
            TransientStoreError: when every attempt failed
            StoreError: any non-transient failure, immediately
        """
        attempts = max(1, self.max_attempts)
        for attempt in range(attempts):
            try:
                return fn(*args, **kwargs)
            except TransientStoreError as e:
                if attempt + 1 >= attempts:
                    raise
                delay = self.delay_for(attempt)
                metrics.retry_total.labels(operation=operation).inc()
                logger.warning(
                    f"Transient error during {operation} (attempt {attempt + 1}/{attempts}), "
                    f"retrying in {delay:.1f}s: {e}"
                )
                self.sleep(delay)
        raise AssertionError("unreachable")
