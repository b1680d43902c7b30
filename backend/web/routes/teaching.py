"""Teaching (reviewer-facing) API routes for learner submissions."""

from __future__ import annotations

import sys

# Ensure imports via `routes.teaching` and `backend.web.routes.teaching` point to the same module.
if __name__ == "backend.web.routes.teaching":
    sys.modules.setdefault("routes.teaching", sys.modules[__name__])
elif __name__ == "routes.teaching":
    sys.modules.setdefault("backend.web.routes.teaching", sys.modules[__name__])

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from .learning import _error_response, _get_repo, _read_json, _require_strict_same_origin
from backend.learning.errors import ConflictError
from backend.learning.usecases.submissions import ReviewSubmissionInput, ReviewSubmissionUseCase

teaching_router = APIRouter(tags=["Teaching"])


def _private_error(payload: dict, *, status_code: int) -> JSONResponse:
    """Return error JSON with private, no-store cache headers."""
    return JSONResponse(payload, status_code=status_code, headers={"Cache-Control": "private, no-store", "Vary": "Origin"})


def _role_in(user: dict | None, role: str) -> bool:
    if not user:
        return False
    roles = user.get("roles") or []
    if not isinstance(roles, list):
        return False
    return role in roles


def _require_teacher(request: Request):
    """Return (user, error_response) ensuring caller has teacher role."""
    user = getattr(request.state, "user", None)
    if not user:
        return None, _private_error({"error": "unauthenticated", "retry": True}, status_code=401)
    if not _role_in(user, "teacher"):
        return None, _private_error({"error": "forbidden"}, status_code=403)
    return user, None


@teaching_router.post("/api/teaching/submissions/{submission_id}/review")
async def review_submission(request: Request, submission_id: str):
    """Record a review decision on a learner's submission.

    Parameters:
        Body `{status, score?, review_notes?}` with status one of approved,
        rejected or revision_requested.

    Behavior:
        - 200 with the updated submission.
        - 400 `invalid_status`, `invalid_score` or `nothing_to_review` (pending row).
        - 404 when the submission does not exist.
        - Re-evaluates the learner's lesson; approval may complete it.

    Permissions:
        Caller must have the `teacher` role.
    """
    if not _require_strict_same_origin(request):
        return _private_error({"error": "forbidden", "detail": "csrf_violation"}, status_code=403)
    user, error = _require_teacher(request)
    if error:
        return error
    try:
        payload: dict[str, Any] = await _read_json(request)
        rec = ReviewSubmissionUseCase(_get_repo()).execute(
            ReviewSubmissionInput(
                submission_id=submission_id,
                reviewer_id=str(user.get("sub")),
                status=payload.get("status"),
                score=payload.get("score"),
                review_notes=payload.get("review_notes"),
            )
        )
    except (ValueError, LookupError, ConflictError) as exc:
        return _error_response(exc)
    return JSONResponse(rec.to_dict(), headers={"Cache-Control": "private, no-store", "Vary": "Origin"})
