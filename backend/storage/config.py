"""
Centralized storage configuration for submission files and upload limits.

Intent:
    Provide a single source of truth for the submissions bucket, the local
    storage root and the default per-task upload limits, together with their
    environment-variable overrides. Prevents drift across modules and enables
    simple testing.

Behavior:
    - SUBMISSIONS_BUCKET_DEFAULT defines the canonical bucket ("submissions").
    - get_submissions_bucket() reads LEARNING_STORAGE_BUCKET with a fallback.
    - get_default_max_files_count() / get_default_max_file_size_mb() return the
      limits applied to tasks that do not declare their own.

Permissions:
    Pure configuration; no external calls or privileges required.
"""
from __future__ import annotations

import os

from backend.learning.domain import DEFAULT_MAX_FILE_SIZE_MB, DEFAULT_MAX_FILES_COUNT


SUBMISSIONS_BUCKET_DEFAULT = "submissions"


def get_submissions_bucket() -> str:
    """Return the configured submissions bucket name.

    Env:
        LEARNING_STORAGE_BUCKET – optional override; otherwise defaults to
        SUBMISSIONS_BUCKET_DEFAULT.
    """
    return (os.getenv("LEARNING_STORAGE_BUCKET") or SUBMISSIONS_BUCKET_DEFAULT).strip()


def get_storage_root() -> str | None:
    """Return STORAGE_ROOT for the local file store, or None when unset."""
    return (os.getenv("STORAGE_ROOT") or "").strip() or None


__all__ = [
    "SUBMISSIONS_BUCKET_DEFAULT",
    "get_storage_root",
    "get_submissions_bucket",
]

# --- Size limits --------------------------------------------------------------

def _parse_int_env(name: str, default: int, *, contract_max: int | None = None) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value <= 0:
        return default
    if isinstance(contract_max, int) and contract_max > 0:
        value = min(value, contract_max)
    return value


def get_default_max_files_count() -> int:
    """Default number of files per submission (default 5, clamped to 50)."""
    return _parse_int_env("LEARNING_DEFAULT_MAX_FILES", DEFAULT_MAX_FILES_COUNT, contract_max=50)


def get_default_max_file_size_mb() -> int:
    """Default per-file size limit in MiB (default 200, clamped to 1024)."""
    return _parse_int_env("LEARNING_DEFAULT_MAX_FILE_SIZE_MB", DEFAULT_MAX_FILE_SIZE_MB, contract_max=1024)


__all__ += [
    "get_default_max_file_size_mb",
    "get_default_max_files_count",
]
