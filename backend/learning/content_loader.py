"""
Load lessons and tasks from a YAML content file.

Why:
    Lesson and task authoring lives outside this engine. For development,
    demos and the in-memory repository we still need realistic content, so a
    small YAML document describes lessons and their tasks:

        lessons:
          - id: lesson-1
            course_id: course-1
            title: Reading week
            tasks:
              - id: task-1
                title: Summary
                submission_type: text_only
                is_required: true

Behavior:
    - Unknown submission types or media categories raise ValueError with the
      offending task id, so broken content fails at load time.
    - Missing limits fall back to the configured defaults.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, List, Protocol

import yaml

from backend.learning.domain import (
    LessonDefinition,
    MediaCategory,
    SubmissionType,
    TaskDefinition,
)
from backend.storage.config import get_default_max_file_size_mb, get_default_max_files_count


class ContentSinkProtocol(Protocol):
    def add_lesson(self, lesson: LessonDefinition) -> LessonDefinition: ...

    def put_task(self, task: TaskDefinition) -> TaskDefinition: ...


def _positive_int(value: Any, default: int, *, field: str, task_id: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"task {task_id}: {field} must be a positive integer")
    return value


def _media_types(value: Any, task_id: str) -> frozenset[MediaCategory]:
    if value is None:
        return frozenset(MediaCategory)
    if isinstance(value, str) or not isinstance(value, Iterable):
        raise ValueError(f"task {task_id}: allowed_media_types must be a list")
    try:
        return frozenset(MediaCategory(str(v).strip().lower()) for v in value)
    except ValueError:
        raise ValueError(f"task {task_id}: unknown media type in {list(value)!r}") from None


def _task_from_mapping(raw: dict[str, Any], lesson_id: str, position: int) -> TaskDefinition:
    task_id = str(raw.get("id") or "").strip()
    if not task_id:
        raise ValueError(f"lesson {lesson_id}: task without id")
    try:
        submission_type = SubmissionType(str(raw.get("submission_type") or SubmissionType.EITHER.value))
    except ValueError:
        raise ValueError(f"task {task_id}: unknown submission_type {raw.get('submission_type')!r}") from None
    is_required = raw.get("is_required", True)
    return TaskDefinition(
        id=task_id,
        lesson_id=lesson_id,
        title=str(raw.get("title") or ""),
        description=str(raw.get("description") or ""),
        is_required=None if is_required is None else bool(is_required),
        points=int(raw.get("points") or 0),
        submission_type=submission_type,
        text_submission_enabled=bool(raw.get("text_submission_enabled", True)),
        text_submission_instructions=raw.get("text_submission_instructions"),
        media_required=bool(raw.get("media_required", False)),
        allowed_media_types=_media_types(raw.get("allowed_media_types"), task_id),
        max_files_count=_positive_int(
            raw.get("max_files_count"), get_default_max_files_count(), field="max_files_count", task_id=task_id
        ),
        max_file_size_mb=_positive_int(
            raw.get("max_file_size_mb"), get_default_max_file_size_mb(), field="max_file_size_mb", task_id=task_id
        ),
        position=position if raw.get("position") is None else int(raw["position"]),
    )


def parse_content(document: Any) -> tuple[List[LessonDefinition], List[TaskDefinition]]:
    """Turn a parsed YAML document into lesson and task definitions."""
    if document is None:
        return [], []
    if not isinstance(document, dict) or not isinstance(document.get("lessons", []), list):
        raise ValueError("content must be a mapping with a 'lessons' list")
    lessons: List[LessonDefinition] = []
    tasks: List[TaskDefinition] = []
    for raw_lesson in document.get("lessons") or []:
        if not isinstance(raw_lesson, dict) or not raw_lesson.get("id"):
            raise ValueError("every lesson needs an id")
        lesson = LessonDefinition(
            id=str(raw_lesson["id"]),
            course_id=(str(raw_lesson["course_id"]) if raw_lesson.get("course_id") else None),
            title=str(raw_lesson.get("title") or ""),
        )
        lessons.append(lesson)
        for index, raw_task in enumerate(raw_lesson.get("tasks") or [], start=1):
            if not isinstance(raw_task, dict):
                raise ValueError(f"lesson {lesson.id}: tasks must be mappings")
            tasks.append(_task_from_mapping(raw_task, lesson.id, index))
    return lessons, tasks


def load_content_file(path: str | Path) -> tuple[List[LessonDefinition], List[TaskDefinition]]:
    with Path(path).open("r", encoding="utf-8") as fh:
        return parse_content(yaml.safe_load(fh))


def seed_repo(repo: ContentSinkProtocol, lessons: List[LessonDefinition], tasks: List[TaskDefinition]) -> None:
    for lesson in lessons:
        repo.add_lesson(lesson)
    for task in tasks:
        repo.put_task(task)


__all__ = ["load_content_file", "parse_content", "seed_repo"]
