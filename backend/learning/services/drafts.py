"""Lesson draft initializer: one pending submission row per task and learner."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from backend.learning.domain import SubmissionRecord, TaskDefinition
from backend.learning.errors import ConflictError, NotFoundError

logger = logging.getLogger("lessonwork.learning")


class DraftsRepoProtocol(Protocol):
    def get_lesson(self, lesson_id: str): ...

    def list_tasks_for_lesson(self, lesson_id: str) -> List[TaskDefinition]: ...

    def get_submission(self, task_id: str, user_id: str) -> Optional[SubmissionRecord]: ...

    def insert_pending_submission(
        self, *, task: TaskDefinition, user_id: str, course_id: Optional[str], lesson_id: Optional[str]
    ) -> SubmissionRecord: ...


@dataclass
class DraftSummary:
    created: int = 0
    existing: int = 0
    submissions: List[SubmissionRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "created": self.created,
            "existing": self.existing,
            "submissions": [s.to_dict() for s in self.submissions],
        }


@dataclass
class LessonDraftInitializer:
    repo: DraftsRepoProtocol

    def ensure_draft(
        self, task: TaskDefinition, user_id: str, course_id: Optional[str] = None
    ) -> tuple[SubmissionRecord, bool]:
        """Return the (task, user) row, inserting a pending one when missing.

        A uniqueness conflict means a concurrent caller won the insert; the
        winner's row is returned and reported as not created.
        """
        current = self.repo.get_submission(task.id, user_id)
        if current is not None:
            return current, False
        try:
            rec = self.repo.insert_pending_submission(
                task=task, user_id=user_id, course_id=course_id, lesson_id=task.lesson_id
            )
            return rec, True
        except ConflictError:
            winner = self.repo.get_submission(task.id, user_id)
            if winner is None:  # pragma: no cover - conflict implies the row exists
                raise
            return winner, False

    def ensure_drafts(self, lesson_id: str, user_id: str, course_id: Optional[str] = None) -> DraftSummary:
        """Create any missing pending rows for the lesson's tasks.

        Intent:
            Guarantee that after the call every task of the lesson has exactly
            one row for the learner, regardless of how many callers race.

        Behavior:
            - Unknown lesson -> NotFoundError("lesson_not_found").
            - Rows that already exist (any status) are counted as existing and
              left untouched.
        """
        if self.repo.get_lesson(lesson_id) is None:
            raise NotFoundError("lesson_not_found")
        summary = DraftSummary()
        for task in self.repo.list_tasks_for_lesson(lesson_id):
            rec, created = self.ensure_draft(task, user_id, course_id)
            if created:
                summary.created += 1
            else:
                summary.existing += 1
            summary.submissions.append(rec)
        if summary.created:
            logger.info("drafts created lesson=%s user=%s created=%s", lesson_id, str(user_id)[-6:], summary.created)
        return summary


__all__ = ["DraftSummary", "DraftsRepoProtocol", "LessonDraftInitializer"]
