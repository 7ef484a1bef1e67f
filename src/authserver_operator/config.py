"""Configuration management for the AuthServer Operator."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class OperatorConfig:
    """Operator configuration."""

    # Periodic resync of every AuthServer (drift detection)
    resync_interval_seconds: int = 300

    # Metrics and health check port
    metrics_port: int = 8080

    # Let Kubernetes garbage collection remove the Ingress with its owner
    gc_via_owner_references: bool = True

    # Backoff for transient store errors within one reconcile
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 8.0

    # Refetch-and-retry passes after a version conflict
    conflict_retries: int = 1

    k8s_rate_limit_per_second: float = 10.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "OperatorConfig":
        """Load configuration from environment variables."""
        return cls(
            resync_interval_seconds=int(os.getenv("RESYNC_INTERVAL_SECONDS", "300")),
            metrics_port=int(os.getenv("METRICS_PORT", "8080")),
            gc_via_owner_references=_env_bool("INGRESS_GC_VIA_OWNER_REFERENCES", True),
            retry_max_attempts=int(os.getenv("STORE_RETRY_MAX_ATTEMPTS", "3")),
            retry_base_delay_seconds=float(os.getenv("STORE_RETRY_BASE_DELAY_SECONDS", "1.0")),
            retry_max_delay_seconds=float(os.getenv("STORE_RETRY_MAX_DELAY_SECONDS", "8.0")),
            conflict_retries=int(os.getenv("CONFLICT_RETRIES", "1")),
            k8s_rate_limit_per_second=float(os.getenv("K8S_RATE_LIMIT_PER_SECOND", "10.0")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_config() -> OperatorConfig:
    """Return the process-wide configuration, read once from the environment."""
    return OperatorConfig.from_env()
