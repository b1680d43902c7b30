"""
Upload admission control for learning submissions.

Centralises count/size/category constraints so that routers stay slim and both
tests and documentation can reference a single source of truth. The gate runs
before the submission-type policy: only files it accepts count as "attached".

Behavior:
    Files are checked in the order given. For each file:
      1. count: rejected once `max_files_count` files were already accepted;
      2. size: rejected when larger than `max_file_size_mb` MiB;
      3. category: derived from the MIME prefix (image/, video/, audio/,
         anything else is a document) and rejected when not allowed.
    Errors accumulate; the gate never fails fast.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from backend.learning.domain import MediaCategory, TaskDefinition, UploadedFile

_MIME_PREFIXES: tuple[tuple[str, MediaCategory], ...] = (
    ("image/", MediaCategory.IMAGE),
    ("video/", MediaCategory.VIDEO),
    ("audio/", MediaCategory.AUDIO),
)

BYTES_PER_MB = 1024 * 1024


def categorize_media_type(mime_type: str | None) -> MediaCategory:
    """Map a MIME type to its media category (unknown types are documents)."""
    value = (mime_type or "").strip().lower()
    for prefix, category in _MIME_PREFIXES:
        if value.startswith(prefix):
            return category
    return MediaCategory.DOCUMENT


@dataclass(frozen=True, slots=True)
class UploadError:
    file_name: str
    code: str
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class AcceptedFile:
    file: UploadedFile
    category: MediaCategory


@dataclass(frozen=True, slots=True)
class UploadGateResult:
    accepted: tuple[AcceptedFile, ...] = ()
    errors: tuple[UploadError, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True, slots=True)
class UploadGate:
    """Immutable gate evaluated per request against the task's limits."""

    def validate(self, task: TaskDefinition, files: Iterable[UploadedFile]) -> UploadGateResult:
        max_files = int(task.max_files_count)
        max_bytes = int(task.max_file_size_mb) * BYTES_PER_MB
        allowed = frozenset(MediaCategory(c) for c in task.allowed_media_types)
        accepted: list[AcceptedFile] = []
        errors: list[UploadError] = []
        for item in files:
            if len(accepted) >= max_files:
                errors.append(
                    UploadError(item.name, "too_many_files", f"{item.name}: maximum {max_files} files allowed")
                )
                continue
            if int(item.size) > max_bytes:
                errors.append(
                    UploadError(item.name, "file_too_large", f"{item.name} exceeds {task.max_file_size_mb}MB limit")
                )
                continue
            category = categorize_media_type(item.mime_type)
            if category not in allowed:
                errors.append(UploadError(item.name, "type_not_allowed", f"{item.name} type not allowed"))
                continue
            accepted.append(AcceptedFile(file=item, category=category))
        return UploadGateResult(accepted=tuple(accepted), errors=tuple(errors))


DEFAULT_GATE = UploadGate()


def error_messages(errors: Sequence[UploadError]) -> list[str]:
    return [str(e) for e in errors]


__all__ = [
    "AcceptedFile",
    "BYTES_PER_MB",
    "DEFAULT_GATE",
    "UploadError",
    "UploadGate",
    "UploadGateResult",
    "categorize_media_type",
    "error_messages",
]
