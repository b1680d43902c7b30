"""
Shared builders for learning tests: tasks, uploads and seeded repositories.

Keeps ids unique per test so API tests can share the module-level repo
without cross-talk.
"""
from __future__ import annotations

import uuid
from typing import Iterable, Optional

from backend.learning.domain import (
    LessonDefinition,
    MediaCategory,
    SubmissionType,
    TaskDefinition,
    UploadedFile,
)
from backend.learning.repo_memory import InMemoryLearningRepo

MB = 1024 * 1024


def make_task(
    submission_type: SubmissionType = SubmissionType.EITHER,
    *,
    lesson_id: str = "lesson-1",
    task_id: Optional[str] = None,
    is_required: Optional[bool] = True,
    position: int = 0,
    points: int = 0,
    max_files_count: int = 5,
    max_file_size_mb: int = 200,
    allowed: Optional[Iterable[MediaCategory]] = None,
) -> TaskDefinition:
    return TaskDefinition(
        id=task_id or f"task-{uuid.uuid4().hex[:8]}",
        lesson_id=lesson_id,
        title="Task",
        is_required=is_required,
        points=points,
        submission_type=submission_type,
        position=position,
        max_files_count=max_files_count,
        max_file_size_mb=max_file_size_mb,
        allowed_media_types=frozenset(allowed) if allowed is not None else frozenset(MediaCategory),
    )


def upload(name: str = "photo.png", *, size: int = 1024, mime_type: str = "image/png", body: Optional[bytes] = None) -> UploadedFile:
    if body is None:
        body = b"x" * min(size, 64)
        return UploadedFile(name=name, size=size, mime_type=mime_type, body=body)
    return UploadedFile(name=name, size=len(body), mime_type=mime_type, body=body)


def seed_lesson(
    repo: InMemoryLearningRepo,
    *tasks: TaskDefinition,
    lesson_id: str = "lesson-1",
    course_id: Optional[str] = "course-1",
) -> LessonDefinition:
    lesson = repo.add_lesson(LessonDefinition(id=lesson_id, course_id=course_id, title="Lesson"))
    for task in tasks:
        repo.put_task(task)
    return lesson
