"""Lesson progress tracker.

Why:
    Progress rows are created once per (lesson, user) and only ever move
    forward: `started_at` is never reset, time spent never decreases and a
    completed lesson stays completed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

from backend.learning.domain import LessonProgressRecord
from backend.learning.errors import ConflictError, ValidationError

logger = logging.getLogger("lessonwork.learning")


class ProgressRepoProtocol(Protocol):
    def get_progress(self, lesson_id: str, user_id: str) -> Optional[LessonProgressRecord]: ...

    def insert_progress(self, *, lesson_id: str, user_id: str, course_id: Optional[str]) -> LessonProgressRecord: ...

    def record_time(self, lesson_id: str, user_id: str, minutes: int) -> Optional[LessonProgressRecord]: ...

    def mark_completed(
        self, lesson_id: str, user_id: str, assessment_data: dict[str, Any]
    ) -> tuple[Optional[LessonProgressRecord], bool]: ...


def _normalize_minutes(value: object) -> int:
    if isinstance(value, bool):
        raise ValidationError("invalid_time_spent")
    try:
        minutes = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ValidationError("invalid_time_spent")
    if minutes < 0:
        raise ValidationError("invalid_time_spent")
    return minutes


@dataclass
class LessonProgressTracker:
    repo: ProgressRepoProtocol

    def get(self, lesson_id: str, user_id: str) -> Optional[LessonProgressRecord]:
        return self.repo.get_progress(lesson_id, user_id)

    def start(self, lesson_id: str, user_id: str, course_id: Optional[str] = None) -> LessonProgressRecord:
        current = self.repo.get_progress(lesson_id, user_id)
        if current is not None:
            return current
        try:
            return self.repo.insert_progress(lesson_id=lesson_id, user_id=user_id, course_id=course_id)
        except ConflictError:
            winner = self.repo.get_progress(lesson_id, user_id)
            if winner is None:  # pragma: no cover - conflict implies the row exists
                raise
            return winner

    def record_time(self, lesson_id: str, user_id: str, minutes: object) -> LessonProgressRecord:
        value = _normalize_minutes(minutes)
        self.start(lesson_id, user_id)
        rec = self.repo.record_time(lesson_id, user_id, value)
        if rec is None:  # pragma: no cover - start() guarantees the row
            raise ConflictError("progress_missing")
        return rec

    def complete(
        self,
        lesson_id: str,
        user_id: str,
        snapshot: Mapping[str, Any],
        *,
        course_id: Optional[str] = None,
    ) -> tuple[LessonProgressRecord, bool]:
        """Mark the lesson completed once; later calls return the row unchanged.

        Returns the row and whether this call performed the transition.
        """
        self.start(lesson_id, user_id, course_id)
        rec, changed = self.repo.mark_completed(lesson_id, user_id, dict(snapshot))
        if rec is None:  # pragma: no cover - start() guarantees the row
            raise ConflictError("progress_missing")
        if changed:
            logger.info(
                "lesson completed lesson=%s user=%s source=%s",
                lesson_id,
                str(user_id)[-6:],
                snapshot.get("source", "manual"),
            )
        return rec, changed


__all__ = ["LessonProgressTracker", "ProgressRepoProtocol"]
