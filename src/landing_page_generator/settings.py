"""Runtime settings for the landing page pipeline.

Every value is read from the environment with a default so the services and
tests can run without extra configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))


def _float(key: str, default: float) -> float:
    return float(os.getenv(key, str(default)))


def _str(key: str, default: str) -> str:
    return os.getenv(key, default)


# =====================================================================
# Environment / GCP
# =====================================================================

ENVIRONMENT = _str("ENVIRONMENT", "dev")
PROJECT_ID = os.getenv("PROJECT_ID")

VERTEX_LOCATION = _str("VERTEX_LOCATION", "asia-northeast1")
VERTEX_MODEL = _str("VERTEX_MODEL", "gemini-2.0-flash")
MODEL_TEMPERATURE = _float("MODEL_TEMPERATURE", 0.7)
MODEL_MAX_OUTPUT_TOKENS = _int("MODEL_MAX_OUTPUT_TOKENS", 8192)

FIRESTORE_COLLECTION = _str("FIRESTORE_COLLECTION", "landing_page_runs")

PUBSUB_TOPIC_RUN_REQUESTS = _str("PUBSUB_TOPIC_RUN_REQUESTS", "landing-page-run-requests")
PUBSUB_TOPIC_RUN_COMPLETED = _str("PUBSUB_TOPIC_RUN_COMPLETED", "landing-page-run-completed")


# =====================================================================
# Pipeline
# =====================================================================

# Per-stage hard timeout for one model call (seconds)
STAGE_TIMEOUT_SECONDS = _float("STAGE_TIMEOUT_SECONDS", 45.0)

# Attempts per stage, including the first one
STAGE_MAX_ATTEMPTS = _int("STAGE_MAX_ATTEMPTS", 2)

# Exponential backoff between attempts (seconds)
RETRY_BASE_DELAY = _float("RETRY_BASE_DELAY", 1.0)
RETRY_MAX_DELAY = _float("RETRY_MAX_DELAY", 8.0)

# Attempts per store write before it is reported as a persistence warning
STORE_MAX_ATTEMPTS = _int("STORE_MAX_ATTEMPTS", 2)

# Threads available for model calls across concurrent runs. A call that
# times out keeps its thread until the model returns; the orchestrator then
# moves later calls to a fresh pool of this size.
MODEL_EXECUTOR_WORKERS = _int("MODEL_EXECUTOR_WORKERS", 4)

# Used to build preview / download references
PUBLIC_BASE_URL = _str("PUBLIC_BASE_URL", "http://localhost:8080")


@dataclass(frozen=True)
class OrchestratorSettings:
    stage_timeout: float = STAGE_TIMEOUT_SECONDS
    max_attempts: int = STAGE_MAX_ATTEMPTS
    retry_base_delay: float = RETRY_BASE_DELAY
    retry_max_delay: float = RETRY_MAX_DELAY
    executor_workers: int = MODEL_EXECUTOR_WORKERS
    public_base_url: str = PUBLIC_BASE_URL
    model_name: str = VERTEX_MODEL

    @classmethod
    def from_env(cls) -> "OrchestratorSettings":
        return cls(
            stage_timeout=_float("STAGE_TIMEOUT_SECONDS", 45.0),
            max_attempts=_int("STAGE_MAX_ATTEMPTS", 2),
            retry_base_delay=_float("RETRY_BASE_DELAY", 1.0),
            retry_max_delay=_float("RETRY_MAX_DELAY", 8.0),
            executor_workers=_int("MODEL_EXECUTOR_WORKERS", 4),
            public_base_url=_str("PUBLIC_BASE_URL", "http://localhost:8080"),
            model_name=_str("VERTEX_MODEL", "gemini-2.0-flash"),
        )


__all__ = [
    "ENVIRONMENT",
    "PROJECT_ID",
    "VERTEX_LOCATION",
    "VERTEX_MODEL",
    "MODEL_TEMPERATURE",
    "MODEL_MAX_OUTPUT_TOKENS",
    "FIRESTORE_COLLECTION",
    "PUBSUB_TOPIC_RUN_REQUESTS",
    "PUBSUB_TOPIC_RUN_COMPLETED",
    "STAGE_TIMEOUT_SECONDS",
    "STAGE_MAX_ATTEMPTS",
    "RETRY_BASE_DELAY",
    "RETRY_MAX_DELAY",
    "STORE_MAX_ATTEMPTS",
    "MODEL_EXECUTOR_WORKERS",
    "PUBLIC_BASE_URL",
    "OrchestratorSettings",
]
