"""Learning (learner-facing) API routes: drafts, progress and submissions."""

from __future__ import annotations

import sys

# Ensure imports via `routes.learning` and `backend.web.routes.learning` point to the same module.
if __name__ == "backend.web.routes.learning":
    sys.modules.setdefault("routes.learning", sys.modules[__name__])
elif __name__ == "routes.learning":
    sys.modules.setdefault("backend.web.routes.learning", sys.modules[__name__])

import json
import logging
import mimetypes
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from .security import _is_same_origin
from backend.learning.domain import UploadedFile
from backend.learning.errors import (
    ConflictError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from backend.learning.usecases.lessons import (
    CompleteLessonInput,
    CompleteLessonManuallyUseCase,
    GetLessonProgressUseCase,
    InitLessonSubmissionsUseCase,
    LessonInput,
    ListLessonTasksUseCase,
    StartLessonUseCase,
)
from backend.learning.usecases.submissions import (
    ClearSubmissionInput,
    ClearSubmissionUseCase,
    GetSubmissionStatusUseCase,
    SubmissionStatsUseCase,
    SubmissionStatusInput,
    SubmitTaskInput,
    SubmitTaskUseCase,
)
from backend.storage.learning_policy import BYTES_PER_MB, error_messages
from backend.storage.ports import SubmissionFileStorage

try:
    from backend.web.learning_wiring import build_file_storage, build_learning_repo  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - container fallback when package path is flattened
    from learning_wiring import build_file_storage, build_learning_repo  # type: ignore


logger = logging.getLogger("lessonwork.web.learning")

_UPLOAD_CHUNK_BYTES = 1024 * 1024

learning_router = APIRouter(tags=["Learning"])

STORAGE_ADAPTER: SubmissionFileStorage | None = None


def set_storage_adapter(adapter: SubmissionFileStorage) -> None:
    """Allow tests or startup code to provide a concrete storage adapter."""
    global STORAGE_ADAPTER
    STORAGE_ADAPTER = adapter


def _get_storage() -> SubmissionFileStorage:
    global STORAGE_ADAPTER
    if STORAGE_ADAPTER is None:
        STORAGE_ADAPTER = build_file_storage()
    return STORAGE_ADAPTER


# Lazily construct the repository to ensure environment (.env, pytest) is loaded
# before establishing DB connections. Tests can override via set_repo().
_REPO = None


def _get_repo():
    global _REPO
    if _REPO is None:
        _REPO = build_learning_repo()
    return _REPO


def set_repo(repo) -> None:  # pragma: no cover - used in tests
    global _REPO
    _REPO = repo


def _cache_headers_success() -> dict[str, str]:
    # Success responses: private and explicitly non-storable.
    # Include Vary: Origin to prevent cache confusion across origins.
    return {"Cache-Control": "private, no-store", "Vary": "Origin"}


def _cache_headers_error() -> dict[str, str]:
    # Error responses: must never be stored.
    return {"Cache-Control": "private, no-store", "Vary": "Origin"}


def _require_strict_same_origin(request: Request) -> bool:
    """Return True only when a same-origin indicator is present and matches.

    Why:
        For browser-triggered writes we require either an `Origin` or
        `Referer` header to be present and same-origin to reduce the CSRF
        attack surface.
    """
    origin_present = (request.headers.get("origin") or request.headers.get("referer"))
    if not origin_present:
        return False
    return _is_same_origin(request)


def _csrf_error() -> JSONResponse:
    return JSONResponse({"error": "forbidden", "detail": "csrf_violation"}, status_code=403, headers=_cache_headers_error())


def _current_user(request: Request) -> dict | None:
    user = getattr(request.state, "user", None)
    return user if isinstance(user, dict) else None


def _require_student(request: Request):
    """Ensure the caller is authenticated and has the student role.

    Prefer the roles list on the user context, but accept the primary role
    (request.state.user.role) as a fallback.
    """
    user = _current_user(request)
    if not user or not str(user.get("sub") or ""):
        return None, _error_response(UnauthenticatedError())
    roles = user.get("roles")
    has_student = isinstance(roles, list) and "student" in [str(r).lower() for r in roles]
    if not has_student and str(user.get("role", "")).lower() == "student":
        has_student = True
    if not has_student:
        return None, JSONResponse({"error": "forbidden"}, status_code=403, headers=_cache_headers_error())
    return user, None


def _error_response(exc: Exception) -> JSONResponse:
    """Map learning errors to the JSON error contract."""
    if isinstance(exc, UnauthenticatedError):
        return JSONResponse({"error": "unauthenticated", "retry": True}, status_code=401, headers=_cache_headers_error())
    if isinstance(exc, ValidationError):
        body: dict[str, Any] = {"error": "validation_failed", "detail": exc.reason}
        if exc.missing:
            body["missing"] = list(exc.missing)
        if exc.upload_errors:
            body["errors"] = error_messages(exc.upload_errors)  # type: ignore[arg-type]
        return JSONResponse(body, status_code=400, headers=_cache_headers_error())
    if isinstance(exc, NotFoundError):
        return JSONResponse({"error": "not_found", "detail": exc.code}, status_code=404, headers=_cache_headers_error())
    if isinstance(exc, ConflictError):
        return JSONResponse({"error": "conflict", "detail": exc.code}, status_code=409, headers=_cache_headers_error())
    if isinstance(exc, ValueError):
        return JSONResponse({"error": "bad_request", "detail": str(exc) or "invalid_input"}, status_code=400, headers=_cache_headers_error())
    raise exc


async def _read_json(request: Request) -> dict[str, Any]:
    raw = await request.body()
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        raise ValidationError("invalid_json")
    if not isinstance(parsed, dict):
        raise ValidationError("invalid_json")
    return parsed


def _first(payload: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _optional_id(value: Any, code: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip() or len(value) > 200:
        raise ValidationError(code)
    return value.strip()


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


def _parse_file_refs(value: Any) -> list[UploadedFile]:
    """Parse file metadata already stored by an external binary store."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError("invalid_files")
    out: list[UploadedFile] = []
    for item in value:
        if not isinstance(item, dict):
            raise ValidationError("invalid_files")
        name = item.get("name")
        url = item.get("url")
        size = item.get("size")
        mime_type = item.get("mime_type") or item.get("type")
        if not isinstance(name, str) or not name.strip() or not isinstance(url, str) or not url.strip():
            raise ValidationError("invalid_files")
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise ValidationError("invalid_files")
        if mime_type is not None and not isinstance(mime_type, str):
            raise ValidationError("invalid_files")
        out.append(UploadedFile(name=name.strip(), size=size, mime_type=mime_type or "", url=url.strip()))
    return out


async def _read_upload_with_limit(item: Any, limit: int) -> tuple[bytes, int]:
    """Read an uploaded file without buffering more than `limit` + 1 bytes.

    Oversized files come back with an empty body and a size above the limit,
    so admission control rejects them as too large.
    """
    declared = getattr(item, "size", None)
    if limit > 0 and isinstance(declared, int) and declared > limit:
        return b"", declared
    buffer = bytearray()
    while True:
        chunk = await item.read(_UPLOAD_CHUNK_BYTES)
        if not chunk:
            break
        buffer.extend(chunk)
        if limit > 0 and len(buffer) > limit:
            return b"", len(buffer)
    return bytes(buffer), len(buffer)


async def _submit_input_from_request(request: Request, task_id: str, user_id: str) -> SubmitTaskInput:
    """Build the submit input from a multipart form or a JSON body."""
    content_type = (request.headers.get("content-type") or "").lower()
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        task = _get_repo().get_task(task_id)
        limit = int(task.max_file_size_mb) * BYTES_PER_MB if task is not None else 0
        uploads: list[UploadedFile] = []
        for item in list(form.getlist("files")) + list(form.getlist("files[]")):
            if isinstance(item, str):
                continue
            body, size = await _read_upload_with_limit(item, limit)
            name = str(getattr(item, "filename", "") or "").strip() or "upload.bin"
            declared = str(getattr(item, "content_type", "") or "").strip()
            mime_type = declared or (mimetypes.guess_type(name)[0] or "application/octet-stream")
            uploads.append(UploadedFile(name=name, size=size, mime_type=mime_type, body=body))
        text = form.get("submissionText")
        return SubmitTaskInput(
            task_id=task_id,
            user_id=user_id,
            text=text if isinstance(text, str) else None,
            uploads=uploads,
            allow_empty=_truthy(form.get("allowEmpty")),
            course_id=_optional_id(form.get("courseId"), "invalid_course_id"),
            lesson_id=_optional_id(form.get("lessonId"), "invalid_lesson_id"),
        )

    payload = await _read_json(request)
    text = _first(payload, "submission_text", "submissionText")
    if text is not None and not isinstance(text, str):
        raise ValidationError("invalid_submission_text")
    allow_empty_raw = _first(payload, "allow_empty", "allowEmpty")
    uploads = _parse_file_refs(payload.get("files"))
    return SubmitTaskInput(
        task_id=task_id,
        user_id=user_id,
        text=text,
        uploads=uploads,
        # A body without files is the explicit "mark complete" action unless told otherwise.
        allow_empty=(not uploads) if allow_empty_raw is None else _truthy(allow_empty_raw),
        course_id=_optional_id(_first(payload, "course_id", "courseId"), "invalid_course_id"),
        lesson_id=_optional_id(_first(payload, "lesson_id", "lessonId"), "invalid_lesson_id"),
    )


@learning_router.post("/api/learning/lessons/{lesson_id}/init-submissions")
async def init_lesson_submissions(request: Request, lesson_id: str):
    """Ensure one pending submission row per task of the lesson.

    Intent:
        Called when a learner opens a lesson; safe to repeat and to race.

    Behavior:
        - 200 with `{created, existing, submissions}`.
        - 404 when the lesson does not exist.

    Permissions:
        Caller must have the `student` role; rows are created for the caller only.
    """
    if not _require_strict_same_origin(request):
        return _csrf_error()
    user, error = _require_student(request)
    if error:
        return error
    try:
        payload = await _read_json(request)
        summary = InitLessonSubmissionsUseCase(_get_repo()).execute(
            LessonInput(
                lesson_id=lesson_id,
                user_id=str(user.get("sub")),
                course_id=_optional_id(_first(payload, "courseId", "course_id"), "invalid_course_id"),
            )
        )
    except (ValueError, LookupError, ConflictError) as exc:
        return _error_response(exc)
    return JSONResponse(summary.to_dict(), headers=_cache_headers_success())


@learning_router.post("/api/learning/lessons/{lesson_id}/progress")
async def start_lesson_progress(request: Request, lesson_id: str):
    """Create the learner's progress row if missing; never resets `started_at`."""
    if not _require_strict_same_origin(request):
        return _csrf_error()
    user, error = _require_student(request)
    if error:
        return error
    try:
        payload = await _read_json(request)
        rec = StartLessonUseCase(_get_repo()).execute(
            LessonInput(
                lesson_id=lesson_id,
                user_id=str(user.get("sub")),
                course_id=_optional_id(_first(payload, "courseId", "course_id"), "invalid_course_id"),
            )
        )
    except (ValueError, LookupError, ConflictError) as exc:
        return _error_response(exc)
    return JSONResponse(rec.to_dict(), headers=_cache_headers_success())


@learning_router.put("/api/learning/lessons/{lesson_id}/progress")
async def complete_lesson_progress(request: Request, lesson_id: str):
    """Manually mark the lesson completed.

    Parameters:
        Body `{timeSpent?, assessmentData?: {tasksCompleted?, totalTasks?}}`;
        `timeSpent` is in minutes and only ever raises the stored value.

    Behavior:
        - 200 with the progress row; repeated calls keep the first
          `completed_at` and snapshot.
        - 400 on negative or non-integer numbers.
    """
    if not _require_strict_same_origin(request):
        return _csrf_error()
    user, error = _require_student(request)
    if error:
        return error
    try:
        payload = await _read_json(request)
        assessment = payload.get("assessmentData") or {}
        if not isinstance(assessment, dict):
            raise ValidationError("invalid_assessment_data")
        rec = CompleteLessonManuallyUseCase(_get_repo()).execute(
            CompleteLessonInput(
                lesson_id=lesson_id,
                user_id=str(user.get("sub")),
                time_spent=_first(payload, "timeSpent", "time_spent"),
                tasks_completed=_first(assessment, "tasksCompleted", "tasks_completed"),
                total_tasks=_first(assessment, "totalTasks", "total_tasks"),
                course_id=_optional_id(_first(payload, "courseId", "course_id"), "invalid_course_id"),
            )
        )
    except (ValueError, LookupError, ConflictError) as exc:
        return _error_response(exc)
    return JSONResponse(rec.to_dict(), headers=_cache_headers_success())


@learning_router.get("/api/learning/lessons/{lesson_id}/progress")
async def get_lesson_progress(request: Request, lesson_id: str):
    """Return the learner's progress row, or `null` when never started."""
    user, error = _require_student(request)
    if error:
        return error
    try:
        rec = GetLessonProgressUseCase(_get_repo()).execute(LessonInput(lesson_id=lesson_id, user_id=str(user.get("sub"))))
    except (ValueError, LookupError) as exc:
        return _error_response(exc)
    return JSONResponse(rec.to_dict() if rec else None, headers=_cache_headers_success())


@learning_router.get("/api/learning/lessons/{lesson_id}/tasks")
async def list_lesson_tasks(request: Request, lesson_id: str):
    """List the lesson's tasks ordered by position with the caller's submissions."""
    user, error = _require_student(request)
    if error:
        return error
    try:
        body = ListLessonTasksUseCase(_get_repo()).execute(LessonInput(lesson_id=lesson_id, user_id=str(user.get("sub"))))
    except (ValueError, LookupError) as exc:
        return _error_response(exc)
    return JSONResponse(body, headers=_cache_headers_success())


@learning_router.post("/api/learning/tasks/{task_id}/submit")
async def submit_task(request: Request, task_id: str):
    """Submit (or re-submit) the learner's work for a task.

    Why:
        One endpoint serves the upload form (multipart: `submissionText`,
        `files[]`, `courseId`, `lessonId`, `allowEmpty`) and the JSON
        "mark complete" action (`{submission_text, course_id, lesson_id}`).

    Behavior:
        - 200 with `{submission, upload_errors, lesson_completed}`; files the
          upload gate rejected are listed in `upload_errors`.
        - 400 `validation_failed` with `detail` (e.g. text_required,
          files_required, text_and_files_required), `missing` and `errors`;
          nothing is written.
        - 404 for an unknown task; 503 when file storage is not configured.

    Security:
        Enforces same-origin using Origin or Referer; rejects cross-site POSTs.

    Permissions:
        Caller must have the `student` role; the row belongs to the caller.
    """
    if not _require_strict_same_origin(request):
        return _csrf_error()
    user, error = _require_student(request)
    if error:
        return error
    try:
        req = await _submit_input_from_request(request, task_id, str(user.get("sub")))
        result = SubmitTaskUseCase(_get_repo(), _get_storage()).execute(req)
    except (ValueError, LookupError, ConflictError) as exc:
        return _error_response(exc)
    except RuntimeError as exc:
        logger.warning("submission storage failed: %s", exc.__class__.__name__)
        return JSONResponse(
            {"error": "service_unavailable", "detail": "storage_unavailable"}, status_code=503, headers=_cache_headers_error()
        )
    body = {
        "submission": result.submission.to_dict(),
        "upload_errors": error_messages(result.upload_errors),
        "lesson_completed": bool(result.evaluation and result.evaluation.completed),
    }
    return JSONResponse(body, headers=_cache_headers_success())


@learning_router.get("/api/learning/tasks/{task_id}/submission")
async def get_task_submission(request: Request, task_id: str):
    """Return the learner's submission with `can_submit`, `can_revise` and review feedback.

    A pending draft is created when the learner has none yet.
    """
    user, error = _require_student(request)
    if error:
        return error
    try:
        body = GetSubmissionStatusUseCase(_get_repo()).execute(
            SubmissionStatusInput(task_id=task_id, user_id=str(user.get("sub")))
        )
    except (ValueError, LookupError, ConflictError) as exc:
        return _error_response(exc)
    return JSONResponse(body, headers=_cache_headers_success())


@learning_router.delete("/api/learning/tasks/{task_id}/submission")
async def clear_task_submission(request: Request, task_id: str):
    """Reset the learner's submission to pending and delete its files.

    Behavior:
        - 200 with the reset row and the number of removed files.
        - 404 `nothing_to_clear` when the learner has no row for the task.
        - Lesson completion is never reverted by a clear.
    """
    if not _require_strict_same_origin(request):
        return _csrf_error()
    user, error = _require_student(request)
    if error:
        return error
    try:
        result = ClearSubmissionUseCase(_get_repo(), _get_storage()).execute(
            ClearSubmissionInput(task_id=task_id, user_id=str(user.get("sub")))
        )
    except (ValueError, LookupError, ConflictError) as exc:
        return _error_response(exc)
    body = {
        "submission": result.cleared.submission.to_dict(),
        "removed_files": len(result.cleared.removed_files),
        "lesson_completed": bool(result.evaluation and result.evaluation.completed),
    }
    return JSONResponse(body, headers=_cache_headers_success())


@learning_router.get("/api/learning/submissions/stats")
async def get_submission_stats(request: Request):
    """Return the caller's submission counts per status and average score."""
    user, error = _require_student(request)
    if error:
        return error
    stats = SubmissionStatsUseCase(_get_repo()).execute(str(user.get("sub")))
    return JSONResponse(stats, headers=_cache_headers_success())
