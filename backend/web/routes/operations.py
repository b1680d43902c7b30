"""Operations endpoints (internal tooling for teachers/operators)."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from .learning import _get_repo

operations_router = APIRouter(tags=["Operations"])

logger = logging.getLogger("lessonwork.web")


def _private_response(body: dict, *, status_code: int) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers={"Cache-Control": "private, no-store"})


def _require_teacher_or_operator(request: Request):
    user = getattr(request.state, "user", None)
    if not user:
        return None, _private_response({"error": "unauthenticated", "retry": True}, status_code=401)
    roles = user.get("roles")
    if not isinstance(roles, list) or not any(role in ("teacher", "operator") for role in roles):
        return None, _private_response({"error": "forbidden"}, status_code=403)
    return user, None


@operations_router.get("/internal/health/learning")
async def learning_repo_health(request: Request):
    """
    Report whether the learning repository answers a trivial read.

    Permissions:
        Caller must have `teacher` or `operator` role (auth via session cookie).
    """
    _, error = _require_teacher_or_operator(request)
    if error:
        return error

    repo = _get_repo()
    backend = "postgres" if repo.__class__.__name__ == "DBLearningRepo" else "memory"
    try:
        repo.get_lesson("__health_probe__")
    except Exception as exc:
        logger.warning("learning repo probe failed: %s", exc.__class__.__name__)
        return _private_response({"status": "unhealthy", "backend": backend}, status_code=503)
    return _private_response({"status": "healthy", "backend": backend}, status_code=200)
