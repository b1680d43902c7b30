"""Session hand-off from the external identity provider, and logout.

Why:
    Learners authenticate elsewhere. A trusted login gateway calls
    `POST /auth/session` server-to-server with a shared secret and receives an
    opaque session id (also set as cookie); the browser then only ever
    carries that id.
"""

from __future__ import annotations

import hmac
import logging
import os
import sys

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from .security import _is_same_origin

auth_router = APIRouter(tags=["Auth"])

logger = logging.getLogger("lessonwork.web.auth")

ISSUER_SECRET_ENV = "LESSONWORK_SESSION_ISSUER_SECRET"
ISSUER_HEADER = "X-Session-Issuer-Secret"
MAX_SESSION_TTL_SECONDS = 12 * 3600


def _main_module():
    # The app may be imported as `main` (flat layout) or `backend.web.main`.
    mod = sys.modules.get("main") or sys.modules.get("backend.web.main")
    if mod is None:  # pragma: no cover
        import main as mod  # type: ignore
    return mod


def _private_response(body: dict, *, status_code: int) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers={"Cache-Control": "private, no-store"})


def _issuer_secret() -> str:
    return (os.getenv(ISSUER_SECRET_ENV) or "").strip()


def _set_session_cookie(response: Response, value: str, *, max_age: int) -> None:
    mod = _main_module()
    response.set_cookie(
        key=mod.SESSION_COOKIE_NAME,
        value=value,
        httponly=True,
        secure=True,
        samesite="lax",
        path="/",
        max_age=max_age,
    )


def _parse_ttl(value) -> int | None:
    if value is None:
        return 3600
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return None
    return min(value, MAX_SESSION_TTL_SECONDS)


@auth_router.post("/auth/session")
async def issue_session(request: Request):
    """Create a session for a user vouched for by the login gateway.

    Parameters:
        Header `X-Session-Issuer-Secret` must equal LESSONWORK_SESSION_ISSUER_SECRET.
        Body `{sub, roles: [..], name?, ttl_seconds?}`.

    Behavior:
        - 404 when no issuer secret is configured (hand-off disabled).
        - 403 on a missing or wrong secret.
        - 400 on an invalid body; roles outside the allowed set are dropped.
        - 201 with `{session_id, sub, roles, expires_at}` and the session cookie.
    """
    secret = _issuer_secret()
    if not secret:
        return _private_response({"error": "not_found"}, status_code=404)
    provided = request.headers.get(ISSUER_HEADER) or ""
    if not hmac.compare_digest(secret.encode(), provided.encode()):
        logger.warning("Session hand-off refused: bad issuer secret")
        return _private_response({"error": "forbidden"}, status_code=403)

    try:
        payload = await request.json()
    except ValueError:
        return _private_response({"error": "bad_request", "detail": "invalid_json"}, status_code=400)
    if not isinstance(payload, dict):
        return _private_response({"error": "bad_request", "detail": "invalid_json"}, status_code=400)
    sub = payload.get("sub")
    roles = payload.get("roles")
    name = payload.get("name") or ""
    if not isinstance(sub, str) or not sub.strip():
        return _private_response({"error": "bad_request", "detail": "invalid_sub"}, status_code=400)
    if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
        return _private_response({"error": "bad_request", "detail": "invalid_roles"}, status_code=400)
    if not isinstance(name, str):
        return _private_response({"error": "bad_request", "detail": "invalid_name"}, status_code=400)
    ttl = _parse_ttl(payload.get("ttl_seconds"))
    if ttl is None:
        return _private_response({"error": "bad_request", "detail": "invalid_ttl"}, status_code=400)

    rec = _main_module().SESSION_STORE.create(sub=sub.strip(), roles=roles, name=name, ttl_seconds=ttl)
    if not rec.roles:
        _main_module().SESSION_STORE.delete(rec.session_id)
        return _private_response({"error": "bad_request", "detail": "invalid_roles"}, status_code=400)
    logger.info("Session issued: roles=%s ttl=%s", ",".join(rec.roles), ttl)
    response = _private_response(
        {"session_id": rec.session_id, "sub": rec.sub, "roles": rec.roles, "expires_at": rec.expires_at},
        status_code=201,
    )
    _set_session_cookie(response, rec.session_id, max_age=ttl)
    return response


@auth_router.post("/auth/logout")
async def logout(request: Request):
    """Drop the server-side session and clear the cookie.

    Browser-triggered, so Origin/Referer must be same-origin. Unknown or
    missing sessions still answer 204.
    """
    origin_present = request.headers.get("origin") or request.headers.get("referer")
    if not origin_present or not _is_same_origin(request):
        return _private_response({"error": "forbidden", "detail": "csrf_violation"}, status_code=403)
    mod = _main_module()
    sid = request.cookies.get(mod.SESSION_COOKIE_NAME)
    if sid:
        mod.SESSION_STORE.delete(sid)
    response = Response(status_code=204, headers={"Cache-Control": "private, no-store"})
    _set_session_cookie(response, "", max_age=0)
    return response


__all__ = ["auth_router"]
