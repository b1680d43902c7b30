"""
In-memory repository for the Learning context.

Why:
    Dev/test fallback with the same contract as `DBLearningRepo`: one
    submission per (task, user), one progress row per (lesson, user), and
    conditional completion. A single lock serialises mutations so concurrent
    callers observe the same uniqueness guarantees the database enforces with
    unique indexes.
"""
from __future__ import annotations

import threading
from dataclasses import replace
from typing import Any, Optional
from uuid import uuid4

from backend.learning.domain import (
    LessonDefinition,
    LessonProgressRecord,
    SubmissionRecord,
    SubmissionStatus,
    TaskDefinition,
    utcnow,
)
from backend.learning.errors import ConflictError


class InMemoryLearningRepo:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.lessons: dict[str, LessonDefinition] = {}
        self.tasks: dict[str, TaskDefinition] = {}
        self.submissions: dict[tuple[str, str], SubmissionRecord] = {}
        self.progress: dict[tuple[str, str], LessonProgressRecord] = {}

    # --- Content -------------------------------------------------------------

    def add_lesson(self, lesson: LessonDefinition) -> LessonDefinition:
        with self._lock:
            self.lessons[lesson.id] = lesson
        return lesson

    def put_task(self, task: TaskDefinition) -> TaskDefinition:
        """Insert or replace a task definition.

        Changing `submission_type` is refused once any learner moved past
        pending on that task, so historical rows keep their meaning.
        """
        with self._lock:
            current = self.tasks.get(task.id)
            if current is not None and current.submission_type != task.submission_type:
                if any(
                    s.task_id == task.id and s.status != SubmissionStatus.PENDING
                    for s in self.submissions.values()
                ):
                    raise ConflictError("submission_type_locked")
            self.tasks[task.id] = task
        return task

    def get_lesson(self, lesson_id: str) -> Optional[LessonDefinition]:
        with self._lock:
            return self.lessons.get(lesson_id)

    def get_task(self, task_id: str) -> Optional[TaskDefinition]:
        with self._lock:
            return self.tasks.get(task_id)

    def list_tasks_for_lesson(self, lesson_id: str) -> list[TaskDefinition]:
        with self._lock:
            items = [t for t in self.tasks.values() if t.lesson_id == lesson_id]
        return sorted(items, key=lambda t: (t.position, t.id))

    # --- Submissions ---------------------------------------------------------

    # Reads hold the lock too: iterating a dict while another thread inserts raises.

    def get_submission(self, task_id: str, user_id: str) -> Optional[SubmissionRecord]:
        with self._lock:
            rec = self.submissions.get((task_id, user_id))
            return replace(rec) if rec else None

    def get_submission_by_id(self, submission_id: str) -> Optional[SubmissionRecord]:
        with self._lock:
            for rec in self.submissions.values():
                if rec.id == submission_id:
                    return replace(rec)
        return None

    def list_submissions_for_lesson(self, lesson_id: str, user_id: str) -> list[SubmissionRecord]:
        with self._lock:
            task_ids = {t.id for t in self.tasks.values() if t.lesson_id == lesson_id}
            return [
                replace(rec)
                for (task_id, uid), rec in self.submissions.items()
                if uid == user_id and (task_id in task_ids or rec.lesson_id == lesson_id)
            ]

    def list_submissions_for_user(self, user_id: str) -> list[SubmissionRecord]:
        with self._lock:
            return [replace(rec) for (_, uid), rec in self.submissions.items() if uid == user_id]

    def insert_pending_submission(
        self, *, task: TaskDefinition, user_id: str, course_id: Optional[str], lesson_id: Optional[str]
    ) -> SubmissionRecord:
        key = (task.id, user_id)
        with self._lock:
            if key in self.submissions:
                raise ConflictError("submission_exists")
            now = utcnow()
            rec = SubmissionRecord(
                id=str(uuid4()),
                task_id=task.id,
                user_id=user_id,
                course_id=course_id,
                lesson_id=lesson_id or task.lesson_id,
                status=SubmissionStatus.PENDING,
                submission_type=task.submission_type,
                created_at=now,
                updated_at=now,
            )
            self.submissions[key] = rec
            return replace(rec)

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
        key = (task.id, user_id)
        with self._lock:
            now = utcnow()
            current = self.submissions.get(key)
            rec = SubmissionRecord(
                id=current.id if current else str(uuid4()),
                task_id=task.id,
                user_id=user_id,
                course_id=course_id if course_id is not None else (current.course_id if current else None),
                lesson_id=lesson_id or task.lesson_id,
                status=SubmissionStatus.SUBMITTED,
                submission_text=submission_text,
                submission_data=submission_data,
                submission_type=task.submission_type,
                submitted_at=now,
                created_at=current.created_at if current else now,
                updated_at=now,
            )
            self.submissions[key] = rec
            return replace(rec)

    def reset_submission(self, task_id: str, user_id: str) -> Optional[SubmissionRecord]:
        key = (task_id, user_id)
        with self._lock:
            current = self.submissions.get(key)
            if current is None:
                return None
            rec = replace(
                current,
                status=SubmissionStatus.PENDING,
                submission_text=None,
                submission_data=None,
                submitted_at=None,
                reviewed_by=None,
                reviewed_at=None,
                score=None,
                review_notes=None,
                updated_at=utcnow(),
            )
            self.submissions[key] = rec
            return replace(rec)

    def review_submission(
        self,
        submission_id: str,
        *,
        status: SubmissionStatus,
        score: Optional[int],
        review_notes: Optional[str],
        reviewed_by: str,
    ) -> Optional[SubmissionRecord]:
        with self._lock:
            for key, rec in self.submissions.items():
                if rec.id != submission_id:
                    continue
                now = utcnow()
                updated = replace(
                    rec,
                    status=status,
                    score=score,
                    review_notes=review_notes,
                    reviewed_by=reviewed_by,
                    reviewed_at=now,
                    updated_at=now,
                )
                self.submissions[key] = updated
                return replace(updated)
        return None

    # --- Progress ------------------------------------------------------------

    def get_progress(self, lesson_id: str, user_id: str) -> Optional[LessonProgressRecord]:
        with self._lock:
            rec = self.progress.get((lesson_id, user_id))
            return replace(rec) if rec else None

    def insert_progress(self, *, lesson_id: str, user_id: str, course_id: Optional[str]) -> LessonProgressRecord:
        key = (lesson_id, user_id)
        with self._lock:
            if key in self.progress:
                raise ConflictError("progress_exists")
            rec = LessonProgressRecord(
                lesson_id=lesson_id,
                user_id=user_id,
                course_id=course_id,
                started_at=utcnow(),
                time_spent_minutes=0,
                is_completed=False,
                attempts=1,
            )
            self.progress[key] = rec
            return replace(rec)

    def record_time(self, lesson_id: str, user_id: str, minutes: int) -> Optional[LessonProgressRecord]:
        key = (lesson_id, user_id)
        with self._lock:
            current = self.progress.get(key)
            if current is None:
                return None
            rec = replace(current, time_spent_minutes=max(current.time_spent_minutes, int(minutes)))
            self.progress[key] = rec
            return replace(rec)

    def mark_completed(
        self, lesson_id: str, user_id: str, assessment_data: dict[str, Any]
    ) -> tuple[Optional[LessonProgressRecord], bool]:
        """Set completion fields only when not yet completed; returns (row, changed)."""
        key = (lesson_id, user_id)
        with self._lock:
            current = self.progress.get(key)
            if current is None:
                return None, False
            if current.is_completed:
                return replace(current), False
            rec = replace(current, is_completed=True, completed_at=utcnow(), assessment_data=dict(assessment_data))
            self.progress[key] = rec
            return replace(rec), True


__all__ = ["InMemoryLearningRepo"]
