"""Submission store service (Clean Architecture boundary).

Why:
    Owns the one live submission per (task, user): validate-then-write
    upserts, destructive clears back to pending, and reads. Web adapters stay
    framework-free of these rules and the validation order can be unit-tested
    without FastAPI.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol, Sequence

from backend.learning.domain import (
    FileMeta,
    SubmissionRecord,
    SubmissionStatus,
    TaskDefinition,
    utcnow,
)
from backend.learning.errors import NotFoundError, ValidationError
from backend.learning.policy import SubmissionCandidate, SubmissionTypePolicy

logger = logging.getLogger("lessonwork.learning")


class SubmissionStoreRepoProtocol(Protocol):
    def get_submission(self, task_id: str, user_id: str) -> Optional[SubmissionRecord]:
        ...

    def list_submissions_for_lesson(self, lesson_id: str, user_id: str) -> List[SubmissionRecord]:
        ...

    def upsert_submission(
        self,
        *,
        task: TaskDefinition,
        user_id: str,
        course_id: Optional[str],
        lesson_id: Optional[str],
        submission_text: Optional[str],
        submission_data: Optional[dict[str, Any]],
    ) -> SubmissionRecord:
        ...

    def reset_submission(self, task_id: str, user_id: str) -> Optional[SubmissionRecord]:
        ...


@dataclass
class SubmissionPayload:
    text: Optional[str] = None
    files: Sequence[FileMeta] = ()
    allow_empty: bool = False
    course_id: Optional[str] = None
    lesson_id: Optional[str] = None
    submitted_via: str = "web"


@dataclass
class ClearResult:
    submission: SubmissionRecord
    removed_files: List[FileMeta] = field(default_factory=list)


def _normalize_text(value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("invalid_submission_text")
    return value if value.strip() else None


def _short(user_id: str) -> str:
    return str(user_id)[-6:]


@dataclass
class SubmissionStore:
    repo: SubmissionStoreRepoProtocol
    policy: SubmissionTypePolicy = field(default_factory=SubmissionTypePolicy)

    def check(self, task: TaskDefinition, payload: SubmissionPayload) -> None:
        """Raise ValidationError when the payload does not satisfy the task mode."""
        candidate = SubmissionCandidate(
            text=_normalize_text(payload.text),
            files=tuple(payload.files),
            allow_empty=bool(payload.allow_empty),
        )
        decision = self.policy.can_accept(task, candidate)
        if not decision.accepted:
            raise ValidationError(decision.reason or "invalid_input", missing=decision.missing)

    def create_or_replace(self, task: TaskDefinition, user_id: str, payload: SubmissionPayload) -> SubmissionRecord:
        """Validate the payload, then overwrite the (task, user) row as submitted.

        Behavior:
            - Validation happens before any write; a rejected payload leaves the
              stored row untouched.
            - Text and files are replaced wholesale, never merged.
            - Re-submitting after `revision_requested` bumps
              `submission_data.revision_count`.
        """
        self.check(task, payload)
        text = _normalize_text(payload.text)
        files = list(payload.files)
        previous = self.repo.get_submission(task.id, user_id)
        data: dict[str, Any] = {
            "files": [f.to_dict() for f in files],
            "media_count": len(files),
            "submitted_via": payload.submitted_via,
        }
        revision_count = int(((previous.submission_data or {}) if previous else {}).get("revision_count") or 0)
        if previous is not None and previous.status == SubmissionStatus.REVISION_REQUESTED:
            revision_count += 1
            data["last_revised_at"] = utcnow().isoformat(timespec="seconds")
        if revision_count:
            data["revision_count"] = revision_count
        rec = self.repo.upsert_submission(
            task=task,
            user_id=user_id,
            course_id=payload.course_id,
            lesson_id=payload.lesson_id or task.lesson_id,
            submission_text=text,
            submission_data=data,
        )
        logger.info("submission stored task=%s user=%s files=%s", task.id, _short(user_id), len(files))
        return rec

    def clear(self, task: TaskDefinition, user_id: str) -> ClearResult:
        previous = self.repo.get_submission(task.id, user_id)
        if previous is None:
            raise NotFoundError("nothing_to_clear")
        rec = self.repo.reset_submission(task.id, user_id)
        if rec is None:
            raise NotFoundError("nothing_to_clear")
        logger.info("submission cleared task=%s user=%s", task.id, _short(user_id))
        return ClearResult(submission=rec, removed_files=previous.files)

    def get(self, task: TaskDefinition, user_id: str) -> Optional[SubmissionRecord]:
        return self.repo.get_submission(task.id, user_id)

    def get_for_lesson(self, lesson_id: str, user_id: str) -> List[SubmissionRecord]:
        return self.repo.list_submissions_for_lesson(lesson_id, user_id)


__all__ = ["ClearResult", "SubmissionPayload", "SubmissionStore", "SubmissionStoreRepoProtocol"]
