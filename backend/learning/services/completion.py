"""Completion evaluator: derives the monotonic "lesson complete" flag."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol

from backend.learning.domain import LessonProgressRecord, SubmissionRecord, TaskDefinition
from backend.learning.services.progress import LessonProgressTracker


class CompletionRepoProtocol(Protocol):
    def list_tasks_for_lesson(self, lesson_id: str) -> List[TaskDefinition]: ...

    def list_submissions_for_lesson(self, lesson_id: str, user_id: str) -> List[SubmissionRecord]: ...


@dataclass
class EvaluationOutcome:
    completed: bool
    newly_completed: bool = False
    skipped: bool = False
    required_tasks: int = 0
    satisfied_tasks: int = 0
    progress: Optional[LessonProgressRecord] = None

    def to_dict(self) -> dict:
        return {
            "completed": self.completed,
            "newly_completed": self.newly_completed,
            "required_tasks": self.required_tasks,
            "satisfied_tasks": self.satisfied_tasks,
        }


@dataclass
class CompletionEvaluator:
    repo: CompletionRepoProtocol
    tracker: Optional[LessonProgressTracker] = None

    def __post_init__(self) -> None:
        if self.tracker is None:
            self.tracker = LessonProgressTracker(self.repo)  # type: ignore[arg-type]

    def evaluate(self, lesson_id: str, user_id: str, *, course_id: Optional[str] = None) -> EvaluationOutcome:
        """Complete the lesson when every required task is satisfied.

        Behavior:
            - Already completed: skip without re-reading tasks (monotonic).
            - Required tasks are those whose `is_required` is not False.
            - Satisfied means status submitted or approved.
            - A lesson without required tasks is never auto-completed.
        """
        current = self.tracker.get(lesson_id, user_id)
        if current is not None and current.is_completed:
            return EvaluationOutcome(completed=True, skipped=True, progress=current)

        tasks = self.repo.list_tasks_for_lesson(lesson_id)
        required = [t for t in tasks if t.required]
        by_task = {s.task_id: s for s in self.repo.list_submissions_for_lesson(lesson_id, user_id)}
        satisfied = [t for t in required if t.id in by_task and by_task[t.id].is_satisfied]
        completed_any = sum(1 for t in tasks if t.id in by_task and by_task[t.id].is_satisfied)

        if not required or len(satisfied) < len(required):
            return EvaluationOutcome(
                completed=False,
                required_tasks=len(required),
                satisfied_tasks=len(satisfied),
                progress=current,
            )

        snapshot = {
            "tasks_completed": completed_any,
            "total_tasks": len(tasks),
            "required_tasks": len(required),
            "completed_task_ids": sorted(t.id for t in satisfied),
            "source": "auto",
        }
        rec, changed = self.tracker.complete(lesson_id, user_id, snapshot, course_id=course_id)
        return EvaluationOutcome(
            completed=True,
            newly_completed=changed,
            required_tasks=len(required),
            satisfied_tasks=len(satisfied),
            progress=rec,
        )


__all__ = ["CompletionEvaluator", "CompletionRepoProtocol", "EvaluationOutcome"]
