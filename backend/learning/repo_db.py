"""Postgres-backed repository for the Learning context."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterable, List, Optional

try:  # pragma: no cover -- optional dependency in some environments
    import psycopg
    from psycopg import errors as pg_errors
    from psycopg.types.json import Json

    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover
    psycopg = None  # type: ignore
    pg_errors = None  # type: ignore
    Json = None  # type: ignore
    HAVE_PSYCOPG = False

from backend.learning.domain import (
    LessonDefinition,
    LessonProgressRecord,
    MediaCategory,
    SubmissionRecord,
    SubmissionStatus,
    SubmissionType,
    TaskDefinition,
)
from backend.learning.errors import ConflictError

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


def _dsn() -> str:
    """Resolve the Postgres DSN.

    Order of precedence (first non-empty wins):
      1) LEARNING_DATABASE_URL (context-specific override)
      2) DATABASE_URL (app-wide default)
    """
    for candidate in (os.getenv("LEARNING_DATABASE_URL"), os.getenv("DATABASE_URL")):
        if candidate:
            return candidate
    raise RuntimeError("Database DSN unavailable for Learning repo")


_TASK_COLUMNS = """
    id, lesson_id, title, description, is_required, points, submission_type,
    text_submission_enabled, text_submission_instructions, media_required,
    allowed_media_types, max_files_count, max_file_size_mb, position
"""

_SUBMISSION_COLUMNS = """
    id::text, task_id, user_id, course_id, lesson_id, status, submission_text,
    submission_data, submission_type, submitted_at, created_at, updated_at,
    reviewed_by, reviewed_at, score, review_notes
"""

_PROGRESS_COLUMNS = """
    lesson_id, user_id, course_id, started_at, time_spent_minutes,
    is_completed, completed_at, attempts, assessment_data
"""


def _is_unique_violation(exc: BaseException) -> bool:
    return pg_errors is not None and isinstance(exc, pg_errors.UniqueViolation)


class DBLearningRepo:
    """Persistence adapter used by Learning services and use cases.

    Uniqueness of (task, user) and (lesson, user) is enforced by the schema;
    inserts that lose a race surface as `ConflictError` so idempotent callers
    can re-read the winner's row.
    """

    def __init__(self, dsn: Optional[str] = None) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBLearningRepo")
        self._dsn = dsn or _dsn()

    def _connect(self):
        return psycopg.connect(self._dsn)

    def apply_schema(self) -> None:
        ddl = SCHEMA_PATH.read_text(encoding="utf-8")
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(ddl)
            conn.commit()

    # --- Content -------------------------------------------------------------

    def add_lesson(self, lesson: LessonDefinition) -> LessonDefinition:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    insert into public.lessons (id, course_id, title)
                    values (%s, %s, %s)
                    on conflict (id) do update set course_id = excluded.course_id, title = excluded.title
                    """,
                    (lesson.id, lesson.course_id, lesson.title),
                )
            conn.commit()
        return lesson

    def put_task(self, task: TaskDefinition) -> TaskDefinition:
        """Insert or replace a task; refuses a submission_type change once used."""
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "select submission_type from public.learning_tasks where id = %s for update",
                    (task.id,),
                )
                row = cur.fetchone()
                if row is not None and row[0] != task.submission_type.value:
                    cur.execute(
                        """
                        select exists(
                          select 1 from public.task_submissions
                           where task_id = %s and status <> 'pending'
                        )
                        """,
                        (task.id,),
                    )
                    if bool((cur.fetchone() or [False])[0]):
                        conn.rollback()
                        raise ConflictError("submission_type_locked")
                cur.execute(
                    f"""
                    insert into public.learning_tasks ({_TASK_COLUMNS})
                    values (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    on conflict (id) do update set
                        lesson_id = excluded.lesson_id,
                        title = excluded.title,
                        description = excluded.description,
                        is_required = excluded.is_required,
                        points = excluded.points,
                        submission_type = excluded.submission_type,
                        text_submission_enabled = excluded.text_submission_enabled,
                        text_submission_instructions = excluded.text_submission_instructions,
                        media_required = excluded.media_required,
                        allowed_media_types = excluded.allowed_media_types,
                        max_files_count = excluded.max_files_count,
                        max_file_size_mb = excluded.max_file_size_mb,
                        position = excluded.position
                    """,
                    (
                        task.id,
                        task.lesson_id,
                        task.title,
                        task.description,
                        task.is_required,
                        int(task.points),
                        task.submission_type.value,
                        bool(task.text_submission_enabled),
                        task.text_submission_instructions,
                        bool(task.media_required),
                        sorted(c.value for c in task.allowed_media_types),
                        int(task.max_files_count),
                        int(task.max_file_size_mb),
                        int(task.position),
                    ),
                )
            conn.commit()
        return task

    def get_lesson(self, lesson_id: str) -> Optional[LessonDefinition]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("select id, course_id, title from public.lessons where id = %s", (lesson_id,))
                row = cur.fetchone()
        if not row:
            return None
        return LessonDefinition(id=row[0], course_id=row[1], title=row[2] or "")

    def get_task(self, task_id: str) -> Optional[TaskDefinition]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_TASK_COLUMNS} from public.learning_tasks where id = %s", (task_id,))
                row = cur.fetchone()
        return self._row_to_task(row) if row else None

    def list_tasks_for_lesson(self, lesson_id: str) -> List[TaskDefinition]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_TASK_COLUMNS} from public.learning_tasks where lesson_id = %s order by position asc, id asc",
                    (lesson_id,),
                )
                rows = cur.fetchall()
        return [self._row_to_task(r) for r in rows]

    # --- Submissions ---------------------------------------------------------

    def get_submission(self, task_id: str, user_id: str) -> Optional[SubmissionRecord]:
        return self._fetch_one_submission("task_id = %s and user_id = %s", (task_id, user_id))

    def get_submission_by_id(self, submission_id: str) -> Optional[SubmissionRecord]:
        try:
            return self._fetch_one_submission("id = %s::uuid", (submission_id,))
        except Exception as exc:
            if pg_errors is not None and isinstance(exc, pg_errors.InvalidTextRepresentation):
                return None
            raise

    def _fetch_one_submission(self, where: str, params: tuple) -> Optional[SubmissionRecord]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_SUBMISSION_COLUMNS} from public.task_submissions where {where}", params)
                row = cur.fetchone()
        return self._row_to_submission(row) if row else None

    def list_submissions_for_lesson(self, lesson_id: str, user_id: str) -> List[SubmissionRecord]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    select {_SUBMISSION_COLUMNS}
                      from public.task_submissions
                     where user_id = %s
                       and (lesson_id = %s
                            or task_id in (select id from public.learning_tasks where lesson_id = %s))
                    """,
                    (user_id, lesson_id, lesson_id),
                )
                rows = cur.fetchall()
        return [self._row_to_submission(r) for r in rows]

    def list_submissions_for_user(self, user_id: str) -> List[SubmissionRecord]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_SUBMISSION_COLUMNS} from public.task_submissions where user_id = %s order by created_at",
                    (user_id,),
                )
                rows = cur.fetchall()
        return [self._row_to_submission(r) for r in rows]

    def insert_pending_submission(
        self, *, task: TaskDefinition, user_id: str, course_id: Optional[str], lesson_id: Optional[str]
    ) -> SubmissionRecord:
        with self._connect() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        insert into public.task_submissions
                            (task_id, user_id, course_id, lesson_id, status, submission_type)
                        values (%s, %s, %s, %s, 'pending', %s)
                        returning {_SUBMISSION_COLUMNS}
                        """,
                        (task.id, user_id, course_id, lesson_id or task.lesson_id, task.submission_type.value),
                    )
                    row = cur.fetchone()
                conn.commit()
            except Exception as exc:
                if _is_unique_violation(exc):
                    conn.rollback()
                    raise ConflictError("submission_exists") from None
                raise
        return self._row_to_submission(row)

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
        data = Json(submission_data) if submission_data is not None else None
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    insert into public.task_submissions
                        (task_id, user_id, course_id, lesson_id, status, submission_text,
                         submission_data, submission_type, submitted_at)
                    values (%s, %s, %s, %s, 'submitted', %s, %s, %s, now())
                    on conflict (task_id, user_id) do update set
                        course_id = coalesce(excluded.course_id, public.task_submissions.course_id),
                        lesson_id = excluded.lesson_id,
                        status = 'submitted',
                        submission_text = excluded.submission_text,
                        submission_data = excluded.submission_data,
                        submission_type = excluded.submission_type,
                        submitted_at = now(),
                        updated_at = now(),
                        reviewed_by = null,
                        reviewed_at = null,
                        score = null,
                        review_notes = null
                    returning {_SUBMISSION_COLUMNS}
                    """,
                    (
                        task.id,
                        user_id,
                        course_id,
                        lesson_id or task.lesson_id,
                        submission_text,
                        data,
                        task.submission_type.value,
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        return self._row_to_submission(row)

    def reset_submission(self, task_id: str, user_id: str) -> Optional[SubmissionRecord]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    update public.task_submissions
                       set status = 'pending',
                           submission_text = null,
                           submission_data = null,
                           submitted_at = null,
                           reviewed_by = null,
                           reviewed_at = null,
                           score = null,
                           review_notes = null,
                           updated_at = now()
                     where task_id = %s and user_id = %s
                    returning {_SUBMISSION_COLUMNS}
                    """,
                    (task_id, user_id),
                )
                row = cur.fetchone()
            conn.commit()
        return self._row_to_submission(row) if row else None

    def review_submission(
        self,
        submission_id: str,
        *,
        status: SubmissionStatus,
        score: Optional[int],
        review_notes: Optional[str],
        reviewed_by: str,
    ) -> Optional[SubmissionRecord]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    update public.task_submissions
                       set status = %s,
                           score = %s,
                           review_notes = %s,
                           reviewed_by = %s,
                           reviewed_at = now(),
                           updated_at = now()
                     where id = %s::uuid
                    returning {_SUBMISSION_COLUMNS}
                    """,
                    (status.value, score, review_notes, reviewed_by, submission_id),
                )
                row = cur.fetchone()
            conn.commit()
        return self._row_to_submission(row) if row else None

    # --- Progress ------------------------------------------------------------

    def get_progress(self, lesson_id: str, user_id: str) -> Optional[LessonProgressRecord]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_PROGRESS_COLUMNS} from public.lesson_progress where lesson_id = %s and user_id = %s",
                    (lesson_id, user_id),
                )
                row = cur.fetchone()
        return self._row_to_progress(row) if row else None

    def insert_progress(self, *, lesson_id: str, user_id: str, course_id: Optional[str]) -> LessonProgressRecord:
        with self._connect() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        insert into public.lesson_progress (lesson_id, user_id, course_id, attempts, is_completed)
                        values (%s, %s, %s, 1, false)
                        returning {_PROGRESS_COLUMNS}
                        """,
                        (lesson_id, user_id, course_id),
                    )
                    row = cur.fetchone()
                conn.commit()
            except Exception as exc:
                if _is_unique_violation(exc):
                    conn.rollback()
                    raise ConflictError("progress_exists") from None
                raise
        return self._row_to_progress(row)

    def record_time(self, lesson_id: str, user_id: str, minutes: int) -> Optional[LessonProgressRecord]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    update public.lesson_progress
                       set time_spent_minutes = greatest(time_spent_minutes, %s)
                     where lesson_id = %s and user_id = %s
                    returning {_PROGRESS_COLUMNS}
                    """,
                    (int(minutes), lesson_id, user_id),
                )
                row = cur.fetchone()
            conn.commit()
        return self._row_to_progress(row) if row else None

    def mark_completed(
        self, lesson_id: str, user_id: str, assessment_data: dict[str, Any]
    ) -> tuple[Optional[LessonProgressRecord], bool]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    update public.lesson_progress
                       set is_completed = true,
                           completed_at = now(),
                           assessment_data = %s
                     where lesson_id = %s and user_id = %s and is_completed = false
                    returning {_PROGRESS_COLUMNS}
                    """,
                    (Json(assessment_data), lesson_id, user_id),
                )
                row = cur.fetchone()
            conn.commit()
        if row:
            return self._row_to_progress(row), True
        return self.get_progress(lesson_id, user_id), False

    # --- Row mapping ---------------------------------------------------------

    @staticmethod
    def _row_to_task(row: Iterable[Any]) -> TaskDefinition:
        (
            task_id,
            lesson_id,
            title,
            description,
            is_required,
            points,
            submission_type,
            text_enabled,
            text_instructions,
            media_required,
            media_types,
            max_files,
            max_size,
            position,
        ) = row
        return TaskDefinition(
            id=task_id,
            lesson_id=lesson_id,
            title=title or "",
            description=description or "",
            is_required=is_required,
            points=int(points or 0),
            submission_type=SubmissionType(submission_type),
            text_submission_enabled=bool(text_enabled),
            text_submission_instructions=text_instructions,
            media_required=bool(media_required),
            allowed_media_types=frozenset(MediaCategory(m) for m in (media_types or [])),
            max_files_count=int(max_files),
            max_file_size_mb=int(max_size),
            position=int(position or 0),
        )

    @staticmethod
    def _row_to_submission(row: Iterable[Any]) -> SubmissionRecord:
        (
            sub_id,
            task_id,
            user_id,
            course_id,
            lesson_id,
            status,
            text,
            data,
            submission_type,
            submitted_at,
            created_at,
            updated_at,
            reviewed_by,
            reviewed_at,
            score,
            review_notes,
        ) = row
        return SubmissionRecord(
            id=sub_id,
            task_id=task_id,
            user_id=user_id,
            course_id=course_id,
            lesson_id=lesson_id,
            status=SubmissionStatus(status),
            submission_text=text,
            submission_data=data,
            submission_type=SubmissionType(submission_type) if submission_type else None,
            submitted_at=submitted_at,
            created_at=created_at,
            updated_at=updated_at,
            reviewed_by=reviewed_by,
            reviewed_at=reviewed_at,
            score=score,
            review_notes=review_notes,
        )

    @staticmethod
    def _row_to_progress(row: Iterable[Any]) -> LessonProgressRecord:
        (
            lesson_id,
            user_id,
            course_id,
            started_at,
            minutes,
            is_completed,
            completed_at,
            attempts,
            assessment_data,
        ) = row
        return LessonProgressRecord(
            lesson_id=lesson_id,
            user_id=user_id,
            course_id=course_id,
            started_at=started_at,
            time_spent_minutes=int(minutes or 0),
            is_completed=bool(is_completed),
            completed_at=completed_at,
            attempts=int(attempts or 1),
            assessment_data=assessment_data,
        )


__all__ = ["DBLearningRepo", "SCHEMA_PATH"]
