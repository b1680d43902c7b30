"""
Configuration and startup security checks for lessonwork.

Why: Learner submissions are personal data; we must prevent accidental
insecure deployments. This module provides a single guard that enforces
minimal production safety constraints without burdening local development.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Intent: Abort process startup when obviously insecure settings are detected
    in production/staging. Development remains permissive for convenience.

    Checks:
    - A database DSN must be configured; the in-memory repository loses all
      submissions on restart and is refused.
    - DATABASE_URL must not explicitly disable TLS in prod-like envs.
    - STORAGE_ROOT must be set so uploaded files are persisted.
    - Proxy trust must be an explicit decision (true|false).
    """

    env = os.getenv("LESSONWORK_ENV", "dev")
    if not _is_prod_like(env):
        return  # dev/test remain permissive

    # 1) Persistent repository
    dsn = (os.getenv("LEARNING_DATABASE_URL") or os.getenv("DATABASE_URL") or "").strip()
    if not dsn:
        raise SystemExit(
            "Refusing to start: LEARNING_DATABASE_URL/DATABASE_URL is unset in production."
        )
    backend = (os.getenv("LEARNING_REPO_BACKEND") or "db").strip().lower()
    if backend == "memory":
        raise SystemExit(
            "Refusing to start: LEARNING_REPO_BACKEND=memory is not allowed in production/staging."
        )

    # 2) Postgres TLS: basic guard to avoid explicit disable
    if "sslmode=disable" in dsn:
        raise SystemExit(
            "Refusing to start: database DSN contains sslmode=disable in production. Use sslmode=require or verify TLS."
        )

    # 3) Submission files must land on persistent storage
    if not (os.getenv("STORAGE_ROOT") or "").strip():
        raise SystemExit(
            "Refusing to start: STORAGE_ROOT must be configured in production/staging."
        )

    # 4) Proxy trust must be explicit
    trust = (os.getenv("LESSONWORK_TRUST_PROXY") or "").strip().lower()
    if trust and trust not in ("true", "false"):
        raise SystemExit(
            "Refusing to start: LESSONWORK_TRUST_PROXY must be 'true' or 'false'."
        )
