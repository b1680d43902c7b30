"""
Learning domain types: tasks, submissions and lesson progress.

Why:
    Keep the vocabulary of the submission/completion engine in one place so
    services, repositories and web adapters agree on names and defaults.
    Everything here is plain data; behaviour lives in the services.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class SubmissionType(str, Enum):
    TEXT_ONLY = "text_only"
    MEDIA_ONLY = "media_only"
    BOTH = "both"
    EITHER = "either"


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"


class MediaCategory(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"


ALL_MEDIA_CATEGORIES = frozenset(MediaCategory)

# Statuses that count a task as done for lesson completion.
SATISFIED_STATUSES = frozenset({SubmissionStatus.SUBMITTED, SubmissionStatus.APPROVED})

# Statuses a reviewer may set.
REVIEW_STATUSES = frozenset(
    {SubmissionStatus.APPROVED, SubmissionStatus.REJECTED, SubmissionStatus.REVISION_REQUESTED}
)

DEFAULT_MAX_FILES_COUNT = 5
DEFAULT_MAX_FILE_SIZE_MB = 200


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LessonDefinition:
    id: str
    course_id: Optional[str] = None
    title: str = ""


@dataclass
class TaskDefinition:
    """A gradable unit of work attached to a lesson.

    `is_required` is tri-state in storage; only an explicit False makes a task
    optional, so `None` counts as required.
    """

    id: str
    lesson_id: str
    title: str = ""
    description: str = ""
    is_required: Optional[bool] = True
    points: int = 0
    submission_type: SubmissionType = SubmissionType.EITHER
    text_submission_enabled: bool = True
    text_submission_instructions: Optional[str] = None
    media_required: bool = False
    allowed_media_types: frozenset[MediaCategory] = field(default_factory=lambda: ALL_MEDIA_CATEGORIES)
    max_files_count: int = DEFAULT_MAX_FILES_COUNT
    max_file_size_mb: int = DEFAULT_MAX_FILE_SIZE_MB
    position: int = 0

    @property
    def required(self) -> bool:
        return self.is_required is not False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "lesson_id": self.lesson_id,
            "title": self.title,
            "description": self.description,
            "is_required": self.is_required,
            "points": self.points,
            "submission_type": self.submission_type.value,
            "text_submission_enabled": self.text_submission_enabled,
            "text_submission_instructions": self.text_submission_instructions,
            "media_required": self.media_required,
            "allowed_media_types": sorted(c.value for c in self.allowed_media_types),
            "max_files_count": self.max_files_count,
            "max_file_size_mb": self.max_file_size_mb,
            "position": self.position,
        }


@dataclass(frozen=True)
class UploadedFile:
    """File as presented by the client, before admission control.

    Multipart uploads carry `body`; files already stored by an external
    binary store arrive as metadata with their `url` instead.
    """

    name: str
    size: int
    mime_type: str
    body: bytes = b""
    url: Optional[str] = None


@dataclass(frozen=True)
class FileMeta:
    """Metadata of an accepted and stored file; binaries live elsewhere."""

    name: str
    url: str
    size: int
    category: MediaCategory
    mime_type: str
    storage_key: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "size": self.size,
            "category": self.category.value,
            "mime_type": self.mime_type,
            "storage_key": self.storage_key,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "FileMeta":
        return cls(
            name=str(raw.get("name") or ""),
            url=str(raw.get("url") or ""),
            size=int(raw.get("size") or 0),
            category=MediaCategory(raw.get("category") or MediaCategory.DOCUMENT.value),
            mime_type=str(raw.get("mime_type") or ""),
            storage_key=raw.get("storage_key"),
        )


@dataclass
class SubmissionRecord:
    id: str
    task_id: str
    user_id: str
    course_id: Optional[str]
    lesson_id: Optional[str]
    status: SubmissionStatus = SubmissionStatus.PENDING
    submission_text: Optional[str] = None
    submission_data: Optional[dict[str, Any]] = None
    submission_type: Optional[SubmissionType] = None
    submitted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    score: Optional[int] = None
    review_notes: Optional[str] = None

    @property
    def files(self) -> list[FileMeta]:
        raw = (self.submission_data or {}).get("files") or []
        return [FileMeta.from_dict(item) for item in raw if isinstance(item, dict)]

    @property
    def is_satisfied(self) -> bool:
        return self.status in SATISFIED_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "course_id": self.course_id,
            "lesson_id": self.lesson_id,
            "status": self.status.value,
            "submission_text": self.submission_text,
            "submission_data": self.submission_data,
            "submission_type": self.submission_type.value if self.submission_type else None,
            "submitted_at": _iso(self.submitted_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "reviewed_by": self.reviewed_by,
            "reviewed_at": _iso(self.reviewed_at),
            "score": self.score,
            "review_notes": self.review_notes,
        }


@dataclass
class LessonProgressRecord:
    lesson_id: str
    user_id: str
    course_id: Optional[str] = None
    started_at: Optional[datetime] = None
    time_spent_minutes: int = 0
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    attempts: int = 1
    assessment_data: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "lesson_id": self.lesson_id,
            "user_id": self.user_id,
            "course_id": self.course_id,
            "started_at": _iso(self.started_at),
            "time_spent_minutes": self.time_spent_minutes,
            "is_completed": self.is_completed,
            "completed_at": _iso(self.completed_at),
            "attempts": self.attempts,
            "assessment_data": self.assessment_data,
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="seconds") if value else None


__all__ = [
    "ALL_MEDIA_CATEGORIES",
    "DEFAULT_MAX_FILES_COUNT",
    "DEFAULT_MAX_FILE_SIZE_MB",
    "FileMeta",
    "LessonDefinition",
    "LessonProgressRecord",
    "MediaCategory",
    "REVIEW_STATUSES",
    "SATISFIED_STATUSES",
    "SubmissionRecord",
    "SubmissionStatus",
    "SubmissionType",
    "TaskDefinition",
    "UploadedFile",
    "utcnow",
]
