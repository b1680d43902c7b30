from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Protocol

from backend.learning.domain import (
    LessonDefinition,
    LessonProgressRecord,
    SubmissionRecord,
    TaskDefinition,
)
from backend.learning.errors import NotFoundError, ValidationError
from backend.learning.services.drafts import DraftSummary, LessonDraftInitializer
from backend.learning.services.progress import LessonProgressTracker, _normalize_minutes


class LearningLessonRepoProtocol(Protocol):
    def get_lesson(self, lesson_id: str) -> Optional[LessonDefinition]:
        ...

    def list_tasks_for_lesson(self, lesson_id: str) -> List[TaskDefinition]:
        ...

    def list_submissions_for_lesson(self, lesson_id: str, user_id: str) -> List[SubmissionRecord]:
        ...

    def get_progress(self, lesson_id: str, user_id: str) -> Optional[LessonProgressRecord]:
        ...


def _require_lesson(repo: LearningLessonRepoProtocol, lesson_id: str) -> LessonDefinition:
    lesson = repo.get_lesson(lesson_id)
    if lesson is None:
        raise NotFoundError("lesson_not_found")
    return lesson


@dataclass
class LessonInput:
    lesson_id: str
    user_id: str
    course_id: Optional[str] = None


class InitLessonSubmissionsUseCase:
    def __init__(self, repo: LearningLessonRepoProtocol) -> None:
        self._repo = repo

    def execute(self, req: LessonInput) -> DraftSummary:
        """Ensure a pending submission row per task of the lesson (idempotent)."""
        lesson = _require_lesson(self._repo, req.lesson_id)
        return LessonDraftInitializer(self._repo).ensure_drafts(  # type: ignore[arg-type]
            lesson.id, req.user_id, req.course_id or lesson.course_id
        )


class StartLessonUseCase:
    def __init__(self, repo: LearningLessonRepoProtocol) -> None:
        self._repo = repo

    def execute(self, req: LessonInput) -> LessonProgressRecord:
        lesson = _require_lesson(self._repo, req.lesson_id)
        return LessonProgressTracker(self._repo).start(  # type: ignore[arg-type]
            lesson.id, req.user_id, req.course_id or lesson.course_id
        )


@dataclass
class CompleteLessonInput:
    lesson_id: str
    user_id: str
    time_spent: Any = None
    tasks_completed: Any = None
    total_tasks: Any = None
    course_id: Optional[str] = None


def _optional_count(value: object, code: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(code)
    return value


class CompleteLessonManuallyUseCase:
    def __init__(self, repo: LearningLessonRepoProtocol) -> None:
        self._repo = repo

    def execute(self, req: CompleteLessonInput) -> LessonProgressRecord:
        """Mark the lesson completed on explicit learner request.

        Behavior:
            - `time_spent` (minutes) is applied through the monotonic tracker.
            - Completion is allowed whatever the task state; the snapshot
              records the client's counts with `source = "manual"`.
            - A lesson that is already completed keeps its original
              `completed_at` and snapshot.
        """
        lesson = _require_lesson(self._repo, req.lesson_id)
        tasks_completed = _optional_count(req.tasks_completed, "invalid_tasks_completed")
        total_tasks = _optional_count(req.total_tasks, "invalid_total_tasks")
        minutes = _normalize_minutes(req.time_spent) if req.time_spent is not None else None
        tracker = LessonProgressTracker(self._repo)  # type: ignore[arg-type]
        course_id = req.course_id or lesson.course_id
        tracker.start(lesson.id, req.user_id, course_id)
        if minutes is not None:
            tracker.record_time(lesson.id, req.user_id, minutes)
        tasks = self._repo.list_tasks_for_lesson(lesson.id)
        snapshot = {
            "tasks_completed": tasks_completed,
            "total_tasks": total_tasks if total_tasks is not None else len(tasks),
            "required_tasks": sum(1 for t in tasks if t.required),
            "source": "manual",
        }
        rec, _changed = tracker.complete(lesson.id, req.user_id, snapshot, course_id=course_id)
        return rec


class GetLessonProgressUseCase:
    def __init__(self, repo: LearningLessonRepoProtocol) -> None:
        self._repo = repo

    def execute(self, req: LessonInput) -> Optional[LessonProgressRecord]:
        _require_lesson(self._repo, req.lesson_id)
        return self._repo.get_progress(req.lesson_id, req.user_id)


class ListLessonTasksUseCase:
    def __init__(self, repo: LearningLessonRepoProtocol) -> None:
        self._repo = repo

    def execute(self, req: LessonInput) -> dict[str, Any]:
        """Return the lesson's tasks with the learner's submission per task."""
        lesson = _require_lesson(self._repo, req.lesson_id)
        tasks = self._repo.list_tasks_for_lesson(lesson.id)
        by_task = {s.task_id: s for s in self._repo.list_submissions_for_lesson(lesson.id, req.user_id)}
        progress = self._repo.get_progress(lesson.id, req.user_id)
        items = []
        for task in tasks:
            rec = by_task.get(task.id)
            items.append(
                {
                    "task": task.to_dict(),
                    "submission": rec.to_dict() if rec else None,
                    "is_completed": bool(rec and rec.is_satisfied),
                }
            )
        return {
            "lesson_id": lesson.id,
            "tasks": items,
            "lesson_completed": bool(progress and progress.is_completed),
        }


__all__ = [
    "CompleteLessonInput",
    "CompleteLessonManuallyUseCase",
    "GetLessonProgressUseCase",
    "InitLessonSubmissionsUseCase",
    "LearningLessonRepoProtocol",
    "LessonInput",
    "ListLessonTasksUseCase",
    "StartLessonUseCase",
]
