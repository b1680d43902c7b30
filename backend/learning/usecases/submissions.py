from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol, Sequence
from uuid import uuid4

from backend.learning.domain import (
    REVIEW_STATUSES,
    FileMeta,
    SubmissionRecord,
    SubmissionStatus,
    TaskDefinition,
    UploadedFile,
)
from backend.learning.errors import NotFoundError, ValidationError
from backend.learning.services.completion import CompletionEvaluator, EvaluationOutcome
from backend.learning.services.drafts import LessonDraftInitializer
from backend.learning.services.submission_store import ClearResult, SubmissionPayload, SubmissionStore
from backend.storage.config import get_submissions_bucket
from backend.storage.keys import make_submission_key
from backend.storage.learning_policy import DEFAULT_GATE, UploadError, UploadGate
from backend.storage.ports import SubmissionFileStorage

logger = logging.getLogger("lessonwork.learning")


class LearningSubmissionRepoProtocol(Protocol):
    def get_task(self, task_id: str) -> Optional[TaskDefinition]:
        ...

    def get_submission(self, task_id: str, user_id: str) -> Optional[SubmissionRecord]:
        ...

    def get_submission_by_id(self, submission_id: str) -> Optional[SubmissionRecord]:
        ...

    def list_submissions_for_user(self, user_id: str) -> List[SubmissionRecord]:
        ...

    def review_submission(
        self,
        submission_id: str,
        *,
        status: SubmissionStatus,
        score: Optional[int],
        review_notes: Optional[str],
        reviewed_by: str,
    ) -> Optional[SubmissionRecord]:
        ...


def _require_task(repo: LearningSubmissionRepoProtocol, task_id: str) -> TaskDefinition:
    task = repo.get_task(task_id)
    if task is None:
        raise NotFoundError("task_not_found")
    return task


def _delete_files_best_effort(storage: SubmissionFileStorage, files: Sequence[FileMeta]) -> None:
    bucket = get_submissions_bucket()
    for meta in files:
        if not meta.storage_key:
            continue
        try:
            storage.delete_object(bucket=bucket, key=meta.storage_key)
        except Exception as exc:
            logger.warning("file delete failed: %s", exc.__class__.__name__)


@dataclass
class SubmitTaskInput:
    task_id: str
    user_id: str
    text: Optional[str] = None
    uploads: Sequence[UploadedFile] = ()
    allow_empty: bool = False
    course_id: Optional[str] = None
    lesson_id: Optional[str] = None


@dataclass
class SubmitTaskResult:
    submission: SubmissionRecord
    upload_errors: List[UploadError] = field(default_factory=list)
    evaluation: Optional[EvaluationOutcome] = None


class SubmitTaskUseCase:
    def __init__(
        self,
        repo: LearningSubmissionRepoProtocol,
        storage: SubmissionFileStorage,
        *,
        gate: UploadGate = DEFAULT_GATE,
    ) -> None:
        self._repo = repo
        self._storage = storage
        self._gate = gate

    def execute(self, req: SubmitTaskInput) -> SubmitTaskResult:
        """Admit, validate, store and evaluate a learner's submission.

        Intent:
            Single entry for both the multipart upload form and the JSON
            "mark complete" action, so both paths run the same rules.

        Behavior:
            - UploadGate filters the files first; rejected files are reported
              back but never reach the policy or the store.
            - The submission-type policy runs before any byte is written;
              a rejection raises ValidationError carrying the gate errors.
            - Accepted uploads with a body are written to the file store;
              files from an external store keep their URL.
            - The row is overwritten as submitted; files of the previous
              version that are no longer referenced are deleted best-effort.
            - The completion evaluator runs for the task's lesson.

        Permissions:
            Caller must be the authenticated learner; `user_id` comes from the
            session, never from the payload.
        """
        task = _require_task(self._repo, req.task_id)
        gate_result = self._gate.validate(task, req.uploads)
        upload_errors = list(gate_result.errors)
        store = SubmissionStore(self._repo)  # type: ignore[arg-type]

        # Validate with placeholder metadata before touching the file store.
        provisional = [
            FileMeta(name=a.file.name, url=a.file.url or "", size=a.file.size, category=a.category, mime_type=a.file.mime_type)
            for a in gate_result.accepted
        ]
        payload = SubmissionPayload(
            text=req.text,
            files=provisional,
            # Explicit empty completion only applies when nothing was uploaded.
            allow_empty=req.allow_empty and not req.uploads,
            course_id=req.course_id,
            lesson_id=req.lesson_id or task.lesson_id,
        )
        try:
            store.check(task, payload)
        except ValidationError as exc:
            raise ValidationError(exc.code, missing=exc.missing, upload_errors=upload_errors) from None

        previous = self._repo.get_submission(task.id, req.user_id)
        stored = self._store_files(task, req, [a for a in gate_result.accepted])
        payload.files = stored
        try:
            rec = store.create_or_replace(task, req.user_id, payload)
        except Exception:
            _delete_files_best_effort(self._storage, [m for m in stored if m.storage_key])
            raise

        if previous is not None:
            kept = {m.storage_key for m in stored if m.storage_key}
            _delete_files_best_effort(self._storage, [m for m in previous.files if m.storage_key not in kept])

        evaluation = CompletionEvaluator(self._repo).evaluate(  # type: ignore[arg-type]
            rec.lesson_id or task.lesson_id, req.user_id, course_id=req.course_id
        )
        return SubmitTaskResult(submission=rec, upload_errors=upload_errors, evaluation=evaluation)

    def _store_files(self, task: TaskDefinition, req: SubmitTaskInput, accepted: list) -> List[FileMeta]:
        bucket = get_submissions_bucket()
        out: List[FileMeta] = []
        written: List[FileMeta] = []
        try:
            for item in accepted:
                upload: UploadedFile = item.file
                if upload.url and not upload.body:
                    out.append(
                        FileMeta(
                            name=upload.name,
                            url=upload.url,
                            size=int(upload.size),
                            category=item.category,
                            mime_type=upload.mime_type,
                        )
                    )
                    continue
                key = make_submission_key(
                    course_id=req.course_id,
                    task_id=task.id,
                    user_id=req.user_id,
                    filename=upload.name,
                    epoch_ms=int(time.time() * 1000),
                    uuid_hex=uuid4().hex,
                )
                self._storage.put_object(bucket=bucket, key=key, body=upload.body, content_type=upload.mime_type)
                meta = FileMeta(
                    name=upload.name,
                    url=self._storage.public_url(bucket=bucket, key=key),
                    size=len(upload.body) if upload.body else int(upload.size),
                    category=item.category,
                    mime_type=upload.mime_type,
                    storage_key=key,
                )
                written.append(meta)
                out.append(meta)
        except Exception:
            _delete_files_best_effort(self._storage, written)
            raise
        return out


@dataclass
class ClearSubmissionInput:
    task_id: str
    user_id: str


@dataclass
class ClearSubmissionResult:
    cleared: ClearResult
    evaluation: Optional[EvaluationOutcome] = None


class ClearSubmissionUseCase:
    def __init__(self, repo: LearningSubmissionRepoProtocol, storage: SubmissionFileStorage) -> None:
        self._repo = repo
        self._storage = storage

    def execute(self, req: ClearSubmissionInput) -> ClearSubmissionResult:
        """Reset the learner's row to pending and drop its files.

        Behavior:
            - NotFoundError("nothing_to_clear") when the learner has no row.
            - Stored file objects are deleted best-effort after the reset.
            - The evaluator runs afterwards; completion never reverts.
        """
        task = _require_task(self._repo, req.task_id)
        cleared = SubmissionStore(self._repo).clear(task, req.user_id)  # type: ignore[arg-type]
        _delete_files_best_effort(self._storage, cleared.removed_files)
        evaluation = CompletionEvaluator(self._repo).evaluate(  # type: ignore[arg-type]
            cleared.submission.lesson_id or task.lesson_id, req.user_id
        )
        return ClearSubmissionResult(cleared=cleared, evaluation=evaluation)


@dataclass
class SubmissionStatusInput:
    task_id: str
    user_id: str
    course_id: Optional[str] = None


_FEEDBACK_STATUSES = frozenset({SubmissionStatus.REVISION_REQUESTED, SubmissionStatus.REJECTED})
_OPEN_STATUSES = frozenset({SubmissionStatus.PENDING, SubmissionStatus.REVISION_REQUESTED})


class GetSubmissionStatusUseCase:
    def __init__(self, repo: LearningSubmissionRepoProtocol) -> None:
        self._repo = repo

    def execute(self, req: SubmissionStatusInput) -> dict[str, Any]:
        """Return the learner's submission with UI affordances.

        The pending draft is created lazily when the lesson was never
        initialised for this learner.
        """
        task = _require_task(self._repo, req.task_id)
        rec, _created = LessonDraftInitializer(self._repo).ensure_draft(  # type: ignore[arg-type]
            task, req.user_id, req.course_id
        )
        feedback = None
        if rec.status in _FEEDBACK_STATUSES:
            feedback = {
                "status": rec.status.value,
                "notes": rec.review_notes,
                "score": rec.score,
                "reviewed_at": rec.reviewed_at.isoformat(timespec="seconds") if rec.reviewed_at else None,
                "reviewed_by": rec.reviewed_by,
            }
        data = rec.submission_data or {}
        return {
            "task": task.to_dict(),
            "submission": rec.to_dict(),
            "media_count": int(data.get("media_count") or 0),
            "revision_count": int(data.get("revision_count") or 0),
            "can_submit": rec.status in _OPEN_STATUSES,
            "can_revise": rec.status == SubmissionStatus.REVISION_REQUESTED,
            "review_feedback": feedback,
        }


@dataclass
class ReviewSubmissionInput:
    submission_id: str
    reviewer_id: str
    status: str
    score: Any = None
    review_notes: Optional[str] = None


def _normalize_review_status(value: object) -> SubmissionStatus:
    try:
        status = SubmissionStatus(str(value))
    except ValueError:
        raise ValidationError("invalid_status")
    if status not in REVIEW_STATUSES:
        raise ValidationError("invalid_status")
    return status


def _normalize_score(value: object, points: int) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("invalid_score")
    score = int(value)
    if score < 0 or (points > 0 and score > points):
        raise ValidationError("invalid_score")
    return score


def _normalize_notes(value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("invalid_review_notes")
    trimmed = value.strip()
    return trimmed or None


class ReviewSubmissionUseCase:
    def __init__(self, repo: LearningSubmissionRepoProtocol) -> None:
        self._repo = repo

    def execute(self, req: ReviewSubmissionInput) -> SubmissionRecord:
        """Record a reviewer decision on a submitted row.

        Behavior:
            - Status must be approved, rejected or revision_requested.
            - Score, when given, is an integer in 0..task.points (points 0
              means unbounded).
            - A pending row has nothing to review (ValidationError).
            - The submitter's lesson is re-evaluated; approval can complete it,
              rejection never reopens it.

        Permissions:
            Caller must hold the teacher role; enforced by the web adapter.
        """
        status = _normalize_review_status(req.status)
        rec = self._repo.get_submission_by_id(req.submission_id)
        if rec is None:
            raise NotFoundError("submission_not_found")
        task = _require_task(self._repo, rec.task_id)
        score = _normalize_score(req.score, int(task.points or 0))
        notes = _normalize_notes(req.review_notes)
        if rec.status == SubmissionStatus.PENDING:
            raise ValidationError("nothing_to_review")
        updated = self._repo.review_submission(
            req.submission_id, status=status, score=score, review_notes=notes, reviewed_by=req.reviewer_id
        )
        if updated is None:
            raise NotFoundError("submission_not_found")
        logger.info("submission reviewed task=%s status=%s", rec.task_id, status.value)
        CompletionEvaluator(self._repo).evaluate(  # type: ignore[arg-type]
            updated.lesson_id or task.lesson_id, updated.user_id
        )
        return updated


class SubmissionStatsUseCase:
    def __init__(self, repo: LearningSubmissionRepoProtocol) -> None:
        self._repo = repo

    def execute(self, user_id: str) -> dict[str, Any]:
        """Count the learner's submissions per status and average the scores."""
        counts = {s.value: 0 for s in SubmissionStatus}
        scores: list[int] = []
        rows = self._repo.list_submissions_for_user(user_id)
        for rec in rows:
            counts[rec.status.value] += 1
            if rec.score is not None:
                scores.append(rec.score)
        return {
            "total": len(rows),
            "by_status": counts,
            "average_score": round(sum(scores) / len(scores), 2) if scores else None,
        }


__all__ = [
    "ClearSubmissionInput",
    "ClearSubmissionResult",
    "ClearSubmissionUseCase",
    "GetSubmissionStatusUseCase",
    "LearningSubmissionRepoProtocol",
    "ReviewSubmissionInput",
    "ReviewSubmissionUseCase",
    "SubmissionStatsUseCase",
    "SubmissionStatusInput",
    "SubmitTaskInput",
    "SubmitTaskResult",
    "SubmitTaskUseCase",
]
