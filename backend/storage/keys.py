"""
Helpers to generate standardized storage_key paths for submission files.

Why:
    Keep path shapes consistent and provide simple, testable sanitization that
    avoids path traversal and exotic characters while remaining human-readable.

Conventions:
    - Learning submissions: submissions/{course}/{task}/{user}/{epoch_ms}-{uuid}.{ext}

Security:
    - Sanitization removes characters outside [A-Za-z0-9._-] from segments.
    - Filename extensions are lowercased and filtered to alphanumeric + dot.
"""
from __future__ import annotations

import os
import re
import unicodedata

_SEGMENT_RE = re.compile(r"[^A-Za-z0-9._-]+")


def _sanitize_segment(value: str, *, fallback: str = "x") -> str:
    value = value or ""
    normalized = unicodedata.normalize("NFKD", value)
    ascii_value = normalized.encode("ascii", "ignore").decode("ascii")
    sanitized = _SEGMENT_RE.sub("-", ascii_value).strip("-_.")
    return sanitized or fallback


def _sanitize_ext_from_filename(filename: str | None, default_ext: str = "") -> str:
    if not filename:
        ext = default_ext
    else:
        _, ext = os.path.splitext(os.path.basename(filename))
    ext = (ext or default_ext or "").lower()
    # keep only alnum and dots; collapse invalids
    ext = "".join(ch for ch in ext if ch.isalnum() or ch == ".")
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    return ext


def make_submission_key(*, course_id: str | None, task_id: str, user_id: str, filename: str, epoch_ms: int, uuid_hex: str) -> str:
    """Build a storage key for a submission file.

    Returns: submissions/{course}/{task}/{user}/{epoch_ms}-{uuid}.{ext}
    """
    c = _sanitize_segment(course_id or "", fallback="course")
    t = _sanitize_segment(task_id, fallback="task")
    u = _sanitize_segment(user_id, fallback="user")
    ext = _sanitize_ext_from_filename(filename)
    hexpart = (uuid_hex or "").strip() or "file"
    return f"submissions/{c}/{t}/{u}/{epoch_ms}-{hexpart}{ext}"


__all__ = ["make_submission_key"]
