"""
Repository configuration for the learning engine.

Intent:
    Provide a single place to read the environment variables that select the
    repository backend (in-memory or Postgres), its DSN and the optional
    content file used to seed lessons and tasks.

Why:
    Centralising configuration reduces drift between the web adapter, the CLI
    and tests, and makes validation and defaults explicit.
"""
from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Optional

_BACKENDS = frozenset({"memory", "db"})


@dataclass(frozen=True)
class LearningConfig:
    repo_backend: str  # "memory" | "db"
    database_url: Optional[str]
    content_file: Optional[str]


def _database_url() -> Optional[str]:
    for name in ("LEARNING_DATABASE_URL", "DATABASE_URL"):
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    return None


def load_learning_config() -> LearningConfig:
    """Read and validate learning configuration from the environment.

    Behavior:
        - LEARNING_REPO_BACKEND selects "memory" or "db"; when unset, "db" is
          chosen iff a DSN is configured.
        - "db" without LEARNING_DATABASE_URL/DATABASE_URL is rejected.
        - LEARNING_CONTENT_FILE, when set, must point to an existing file.

    Raises:
        ValueError with a descriptive message on invalid values.
    """
    dsn = _database_url()
    raw_backend = (os.getenv("LEARNING_REPO_BACKEND") or "").strip().lower()
    backend = raw_backend or ("db" if dsn else "memory")
    if backend not in _BACKENDS:
        raise ValueError(f"LEARNING_REPO_BACKEND must be one of memory|db, got: {raw_backend!r}")
    if backend == "db" and not dsn:
        raise ValueError("LEARNING_REPO_BACKEND=db requires LEARNING_DATABASE_URL or DATABASE_URL")
    content_file = (os.getenv("LEARNING_CONTENT_FILE") or "").strip() or None
    if content_file and not os.path.isfile(content_file):
        raise ValueError(f"LEARNING_CONTENT_FILE does not exist: {content_file}")
    return LearningConfig(repo_backend=backend, database_url=dsn, content_file=content_file)


__all__ = ["LearningConfig", "load_learning_config"]
