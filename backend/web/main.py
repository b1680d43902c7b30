"lessonwork"
from __future__ import annotations

import os
import logging
import sys as _sys

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from identity_access.stores import SessionStore

# Ensure legacy imports consistently reference the same module instance.
if __name__ == "main":
    _sys.modules.setdefault("backend.web.main", _sys.modules[__name__])
elif __name__ == "backend.web.main":
    _sys.modules["main"] = _sys.modules[__name__]


def _under_pytest() -> bool:
    return "pytest" in _sys.modules or bool(os.getenv("PYTEST_CURRENT_TEST"))


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out/opt-in via LESSONWORK_ENABLE_DOTENV (default true
      outside pytest).
    """
    if _under_pytest():
        return False
    flag = (os.getenv("LESSONWORK_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


from dotenv import load_dotenv

if _should_load_dotenv():
    load_dotenv()

# Minimal production safety checks (fail-fast on insecure config)
# Support both "flat" (container image) and package (repo test) layouts.
try:
    import config as _cfg  # type: ignore
except ModuleNotFoundError:  # pragma: no cover
    from backend.web import config as _cfg  # type: ignore
_cfg.ensure_secure_config_on_startup()

# --- App & Settings Setup -------------------------------------------------------


class AuthSettings:
    def __init__(self) -> None:
        self._env_override: str | None = None

    @property
    def environment(self) -> str:
        if self._env_override is not None:
            return self._env_override
        return os.getenv("LESSONWORK_ENV", "dev").lower()

    def override_environment(self, env: str | None) -> None:
        """Override environment for tests (e.g., "prod"), or reset with None."""
        self._env_override = env


logger = logging.getLogger("lessonwork.web")
SETTINGS = AuthSettings()
SESSION_COOKIE_NAME = "lessonwork_session"
SESSION_STORE = SessionStore()

app = FastAPI(title="lessonwork", description="Task submissions and lesson completion", version="0.1.0")

# --- Routers & Uploaded Files ---------------------------------------------------

from routes.auth import auth_router
from routes.learning import learning_router
from routes.teaching import teaching_router
from routes.operations import operations_router

# Files written by the local storage adapter are served below /files; access
# still requires a session (see auth_enforcement).
_storage_root = (os.getenv("STORAGE_ROOT") or "").strip()
if _storage_root:
    app.mount("/files", StaticFiles(directory=_storage_root, check_dir=False), name="files")

# --- Auth Helpers & Middleware --------------------------------------------------


def _primary_role(roles: list[str]) -> str:
    priority = ["admin", "teacher", "operator", "student"]
    lowered = [r.lower() for r in roles if isinstance(r, str)]
    for r in priority:
        if r in lowered:
            return r
    return "student"


def _is_public_path(path: str) -> bool:
    return path.startswith("/auth/") or path in ("/health", "/favicon.ico")


@app.middleware("http")
async def auth_enforcement(request: Request, call_next):
    path = request.url.path
    if _is_public_path(path):
        return await call_next(request)

    sid = request.cookies.get(SESSION_COOKIE_NAME)
    rec = None
    if sid:
        try:
            rec = SESSION_STORE.get(sid)
        except Exception as exc:
            logger.warning("Session store get failed: %s", exc.__class__.__name__)

    if not rec:
        # The identity provider may still be restoring the session; clients retry once.
        headers = {"Cache-Control": "private, no-store", "Vary": "Origin"}
        return JSONResponse({"error": "unauthenticated", "retry": True}, status_code=401, headers=headers)

    # Expose minimal, read-only user context for downstream handlers.
    request.state.user = {"sub": rec.sub, "name": getattr(rec, "name", ""), "role": _primary_role(rec.roles), "roles": rec.roles}
    return await call_next(request)

# --- Security Headers Middleware ----------------------------------------------


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    # JSON API only: nothing may be framed or executed.
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    if SETTINGS.environment == "prod":
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response

# --- Other Routes & App Includes -----------------------------------------------

app.include_router(auth_router)
app.include_router(learning_router)
app.include_router(teaching_router)
app.include_router(operations_router)


@app.get("/health")
async def health_check():
    # Minimal health endpoint used by orchestrators and tests.
    return JSONResponse({"status": "healthy"}, headers={"Cache-Control": "private, no-store"})
