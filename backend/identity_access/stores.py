"""
In-memory session store for development and tests.

Why: The identity provider that authenticates learners lives outside this
service. It hands us a subject id, display name and roles; we keep them
server-side and give the browser only an opaque session id. For production,
replace with a Redis/DB-backed store exposing the same methods.

Security: Cookies carry only an opaque session id. Session data stays server-side.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional
import secrets
import threading
import time

from .domain import ALLOWED_ROLES


def _now() -> int:
    return int(time.time())


@dataclass
class SessionRecord:
    session_id: str
    sub: str
    roles: list[str]
    name: str = ""
    expires_at: Optional[int] = None


class SessionStore:
    def __init__(self):
        self._data: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def create(self, *, sub: str, roles: list[str], name: str = "", ttl_seconds: int = 3600) -> SessionRecord:
        if not sub:
            raise ValueError("invalid_sub")
        sid = secrets.token_urlsafe(24)
        clean_roles = [r for r in (str(x).lower() for x in roles) if r in ALLOWED_ROLES]
        rec = SessionRecord(session_id=sid, sub=sub, roles=clean_roles, name=name, expires_at=_now() + ttl_seconds)
        with self._lock:
            self._data[sid] = rec
        return rec

    def get(self, session_id: str) -> Optional[SessionRecord]:
        rec = self._data.get(session_id)
        if not rec:
            return None
        if rec.expires_at and rec.expires_at < _now():
            self.delete(session_id)
            return None
        return rec

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._data.pop(session_id, None)
